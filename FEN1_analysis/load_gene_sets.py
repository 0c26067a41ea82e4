'''
Load gene sets from catalogs into one dictionary of names of gene sets and lists of genes.

Each catalog is a wide table whose columns are names of gene sets and whose columns contain gene symbols.
Columns are ragged; shorter columns are padded with empty cells.
Gene symbols are stripped and uppercased and duplicates are removed while preserving order.
Names of gene sets are suffixed by names of catalogs so that gene sets with the same name in different catalogs remain distinct.
A catalog may exclude gene sets whose names match a pattern before suffixing.
'''

from pathlib import Path
import json
import logging
import pandas as pd
import re

from FEN1_analysis.config import GeneSetSource


logger = logging.getLogger(__name__)


SET_OF_SUFFIXES_OF_SPREADSHEETS = {".xlsx", ".xls", ".xlsm"}


def load_wide_table(source: GeneSetSource) -> pd.DataFrame:
    suffix = source.path.suffix.lower()
    if suffix in SET_OF_SUFFIXES_OF_SPREADSHEETS:
        return pd.read_excel(
            source.path,
            sheet_name = source.sheet if source.sheet is not None else 0,
            dtype = str
        )
    separator = '\t' if suffix in {".tsv", ".txt"} else ','
    return pd.read_csv(source.path, sep = separator, dtype = str)


def normalize_list_of_genes(iterable_of_genes) -> list[str]:
    list_of_genes = []
    for gene in iterable_of_genes:
        if pd.isna(gene):
            continue
        gene = str(gene).strip().upper()
        if gene and gene not in list_of_genes:
            list_of_genes.append(gene)
    return list_of_genes


def create_dictionary_of_names_of_gene_sets_and_lists_of_genes(
    wide_table: pd.DataFrame,
    name_of_catalog: str,
    exclusion_pattern: str | None = None
) -> dict[str, list[str]]:
    dictionary_of_names_of_gene_sets_and_lists_of_genes = {}
    for name_of_column in wide_table.columns:
        name_of_gene_set = str(name_of_column).strip()
        if exclusion_pattern is not None and re.search(exclusion_pattern, name_of_gene_set):
            logger.info(f"Gene set {name_of_gene_set} of catalog {name_of_catalog} is excluded.")
            continue
        list_of_genes = normalize_list_of_genes(wide_table[name_of_column])
        if not list_of_genes:
            logger.warning(f"Gene set {name_of_gene_set} of catalog {name_of_catalog} has no genes.")
            continue
        dictionary_of_names_of_gene_sets_and_lists_of_genes[f"{name_of_gene_set}_{name_of_catalog}"] = list_of_genes
    return dictionary_of_names_of_gene_sets_and_lists_of_genes


def load_gene_sets(list_of_sources: list[GeneSetSource]) -> dict[str, list[str]]:
    '''
    Combine the gene sets of all catalogs.
    A missing or unreadable optional catalog contributes no gene sets.
    A missing or unreadable required catalog raises its error.
    '''
    dictionary_of_names_of_gene_sets_and_lists_of_genes = {}
    for source in list_of_sources:
        try:
            wide_table = load_wide_table(source)
        except Exception as error:
            if not source.is_optional:
                raise
            logger.warning(f"Optional catalog {source.name_of_catalog} at {source.path} could not be read and will be skipped: {error}")
            continue
        dictionary_for_catalog = create_dictionary_of_names_of_gene_sets_and_lists_of_genes(
            wide_table,
            source.name_of_catalog,
            source.exclusion_pattern
        )
        logger.info(f"{len(dictionary_for_catalog)} gene sets were loaded from catalog {source.name_of_catalog}.")
        dictionary_of_names_of_gene_sets_and_lists_of_genes.update(dictionary_for_catalog)
    logger.info(f"{len(dictionary_of_names_of_gene_sets_and_lists_of_genes)} gene sets were loaded in total.")
    return dictionary_of_names_of_gene_sets_and_lists_of_genes


def load_gene_sets_from_JSON(path: Path, name_of_catalog: str) -> dict[str, list[str]]:
    dictionary_of_names_of_gene_sets_and_lists_of_genes = json.loads(Path(path).read_text(encoding = "utf-8"))
    return {
        f"{name_of_gene_set}_{name_of_catalog}": normalize_list_of_genes(list_of_genes)
        for name_of_gene_set, list_of_genes
        in dictionary_of_names_of_gene_sets_and_lists_of_genes.items()
    }
