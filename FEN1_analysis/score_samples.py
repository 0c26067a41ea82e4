'''
Score every sample independently.

For each sample, this module computes
- co-dependency indices between each reference gene and every other gene,
- module scores of every gene set,
- stemness indices by every method, and
- expression of each target gene in each cell.

Each of these sub-results is all or nothing:
a failure of a sub-result for a sample is logged and recorded in a data frame of failures,
the partial sub-result is discarded, and scoring continues with the remaining sub-results and samples.
A failure of one sub-result never removes a sample from another:
in the module score table, columns of a failed sub-result are missing values for the sample's cells
and columns of the sample's other sub-results are kept.
'''

import anndata as ad
import logging
import numpy as np
import pandas as pd

from FEN1_analysis.config import Configuration
from FEN1_analysis.scoring_engine import (
    ScoringEngine,
    ScoringError,
    convert_to_dense_array,
    uppercase_genes
)


logger = logging.getLogger(__name__)


class SampleScores():
    '''
    Class SampleScores holds the sub-results for one sample. A sub-result that failed is None.
    '''

    def __init__(self, sample_ID: str, index_of_cell_IDs: pd.Index):
        self.sample_ID = sample_ID
        self.index_of_cell_IDs = pd.Index(index_of_cell_IDs)
        self.dictionary_of_reference_genes_and_CDI_records = {}
        self.data_frame_of_module_scores = None
        self.dictionary_of_stemness_methods_and_series_of_indices = {}
        self.data_frame_of_expressions = None
        self.list_of_failures = []


    def record_failure(self, sub_analysis: str, error: Exception):
        logger.warning(f"Sub-analysis {sub_analysis} failed for sample {self.sample_ID} and will be omitted: {error}")
        self.list_of_failures.append(
            dict(
                sample_ID = self.sample_ID,
                sub_analysis = sub_analysis,
                error = f"{type(error).__name__}: {error}"
            )
        )


def extract_expressions(matrix: ad.AnnData, list_of_genes: list[str], layer: str | None = None) -> pd.DataFrame:
    matrix = uppercase_genes(matrix)
    list_of_missing_genes = [gene for gene in list_of_genes if gene not in matrix.var_names]
    if list_of_missing_genes:
        raise ScoringError(f"Genes {list_of_missing_genes} are missing.")
    submatrix = matrix[:, list_of_genes]
    expression_matrix = submatrix.X if layer is None else submatrix.layers[layer]
    return pd.DataFrame(
        convert_to_dense_array(expression_matrix).astype(float),
        index = matrix.obs_names.copy(),
        columns = list_of_genes
    )


def score_sample(
    sample_ID: str,
    matrix: ad.AnnData,
    engine: ScoringEngine,
    configuration: Configuration,
    dictionary_of_names_of_gene_sets_and_lists_of_genes: dict[str, list[str]]
) -> SampleScores:
    sample_scores = SampleScores(sample_ID, matrix.obs_names)

    for reference_gene in configuration.list_of_reference_genes:
        try:
            data_frame_of_CDI_records = engine.co_dependency(reference_gene, matrix)
        except Exception as error:
            sample_scores.record_failure(f"co_dependency_of_{reference_gene}", error)
            continue
        data_frame_of_CDI_records.insert(0, "reference_gene", reference_gene)
        data_frame_of_CDI_records.insert(2, "sample_ID", sample_ID)
        sample_scores.dictionary_of_reference_genes_and_CDI_records[reference_gene] = data_frame_of_CDI_records

    try:
        data_frame_of_module_scores = engine.module_score(dictionary_of_names_of_gene_sets_and_lists_of_genes, matrix)
        if data_frame_of_module_scores.isna().any().any():
            raise ScoringError("Module scores contain missing values.")
        sample_scores.data_frame_of_module_scores = data_frame_of_module_scores
    except Exception as error:
        sample_scores.record_failure("module_score", error)

    for method in configuration.list_of_stemness_methods:
        try:
            series_of_indices = engine.stemness(matrix, method)
        except Exception as error:
            sample_scores.record_failure(f"stemness_{method}", error)
            continue
        sample_scores.dictionary_of_stemness_methods_and_series_of_indices[method] = series_of_indices.rename(f"stemness_{method}")

    try:
        sample_scores.data_frame_of_expressions = extract_expressions(
            matrix,
            configuration.list_of_target_genes,
            configuration.layer
        )
    except Exception as error:
        sample_scores.record_failure("expression", error)

    return sample_scores


def create_module_score_rows(
    sample_scores: SampleScores,
    list_of_names_of_gene_sets: list[str],
    list_of_stemness_methods: list[str],
    list_of_target_genes: list[str]
) -> pd.DataFrame | None:
    '''
    Provide one row per cell of a sample with columns of module scores, stemness indices, and expressions.
    Columns of a failed sub-result are missing values; other columns are unaffected.
    A sample none of whose cell-level sub-results succeeded has no rows.
    '''
    if (
        sample_scores.data_frame_of_module_scores is None and
        sample_scores.data_frame_of_expressions is None and
        not sample_scores.dictionary_of_stemness_methods_and_series_of_indices
    ):
        return None
    data_frame_of_rows = pd.DataFrame(index = sample_scores.index_of_cell_IDs.copy())
    for name_of_gene_set in list_of_names_of_gene_sets:
        data_frame_of_rows[name_of_gene_set] = (
            np.nan
            if sample_scores.data_frame_of_module_scores is None
            else sample_scores.data_frame_of_module_scores[name_of_gene_set].reindex(data_frame_of_rows.index).to_numpy()
        )
    for method in list_of_stemness_methods:
        series_of_indices = sample_scores.dictionary_of_stemness_methods_and_series_of_indices.get(method)
        data_frame_of_rows[f"stemness_{method}"] = (
            np.nan if series_of_indices is None else series_of_indices.reindex(data_frame_of_rows.index).to_numpy()
        )
    for gene in list_of_target_genes:
        data_frame_of_rows[gene] = (
            np.nan
            if sample_scores.data_frame_of_expressions is None
            else sample_scores.data_frame_of_expressions[gene].reindex(data_frame_of_rows.index).to_numpy()
        )
    data_frame_of_rows.index.name = "cell_ID"
    data_frame_of_rows = data_frame_of_rows.reset_index()
    data_frame_of_rows.insert(0, "sample_ID", sample_scores.sample_ID)
    return data_frame_of_rows


def create_empty_data_frame(list_of_names_of_text_columns: list[str], list_of_names_of_numeric_columns: list[str]) -> pd.DataFrame:
    return pd.DataFrame(
        {
            **{name_of_column: pd.Series(dtype = "object") for name_of_column in list_of_names_of_text_columns},
            **{name_of_column: pd.Series(dtype = float) for name_of_column in list_of_names_of_numeric_columns}
        }
    )


def score_samples(
    dictionary_of_sample_IDs_and_samples: dict[str, ad.AnnData],
    engine: ScoringEngine,
    configuration: Configuration,
    dictionary_of_names_of_gene_sets_and_lists_of_genes: dict[str, list[str]]
) -> tuple[pd.DataFrame, pd.DataFrame, pd.DataFrame]:
    '''
    Score all samples and provide
    - a data frame of CDI records with columns reference_gene, target_gene, sample_ID, NCDI, p_value, FDR, and counts,
    - a module score table with one row per cell, and
    - a data frame of failures.
    Results are independent of the order in which samples are provided.
    '''
    list_of_data_frames_of_CDI_records = []
    list_of_data_frames_of_module_score_rows = []
    list_of_failures = []
    for sample_ID in sorted(dictionary_of_sample_IDs_and_samples):
        logger.info(f"Sample {sample_ID} will be scored.")
        sample_scores = score_sample(
            sample_ID,
            dictionary_of_sample_IDs_and_samples[sample_ID],
            engine,
            configuration,
            dictionary_of_names_of_gene_sets_and_lists_of_genes
        )
        list_of_data_frames_of_CDI_records.extend(sample_scores.dictionary_of_reference_genes_and_CDI_records.values())
        data_frame_of_module_score_rows = create_module_score_rows(
            sample_scores,
            list(dictionary_of_names_of_gene_sets_and_lists_of_genes),
            configuration.list_of_stemness_methods,
            configuration.list_of_target_genes
        )
        if data_frame_of_module_score_rows is not None:
            list_of_data_frames_of_module_score_rows.append(data_frame_of_module_score_rows)
        list_of_failures.extend(sample_scores.list_of_failures)

    data_frame_of_CDI_records = (
        pd.concat(list_of_data_frames_of_CDI_records, ignore_index = True)
        if list_of_data_frames_of_CDI_records
        else create_empty_data_frame(
            ["reference_gene", "target_gene", "sample_ID"],
            ["NCDI", "p_value", "FDR"]
        )
    )
    module_score_table = (
        pd.concat(list_of_data_frames_of_module_score_rows, ignore_index = True)
        if list_of_data_frames_of_module_score_rows
        else create_empty_data_frame(
            ["sample_ID", "cell_ID"],
            list(dictionary_of_names_of_gene_sets_and_lists_of_genes) +
            [f"stemness_{method}" for method in configuration.list_of_stemness_methods] +
            configuration.list_of_target_genes
        )
    )
    data_frame_of_failures = pd.DataFrame(list_of_failures, columns = ["sample_ID", "sub_analysis", "error"])
    logger.info(
        f"{data_frame_of_CDI_records['sample_ID'].nunique()} samples yielded CDI records; "
        f"{module_score_table['sample_ID'].nunique()} samples have rows in the module score table; "
        f"{len(data_frame_of_failures)} sub-analyses failed."
    )
    return data_frame_of_CDI_records, module_score_table, data_frame_of_failures
