'''
Scoring engines compute, for one sample,
- co-dependency indices between a reference gene and every other gene,
- module scores of gene sets, and
- stemness indices of cells.

The pipeline depends only on the abstract class `ScoringEngine`.
`ScanpyScoringEngine` is the default implementation.

Co-dependency
-------------
Expression is binarized: a cell expresses a gene if its expression value is positive.
For a sample with n cells, a cells expressing the reference gene, b cells expressing a target gene, and
k cells expressing both, under independence k follows a hypergeometric distribution
with expected value a * b / n.
The co-dependency index (CDI) is -log10 of the probability of a count at least as extreme as k
in the direction in which k deviates from its expected value.
The normalized co-dependency index (NCDI) divides the CDI by the CDI of the most extreme attainable count
and carries the sign of the deviation, so that NCDI lies in [-1, 1].
NCDI of a target gene expressed in no cell or in every cell is undefined.
Two sided p values are adjusted into FDRs with the Benjamini-Hochberg procedure within the sample.
'''

from abc import ABC, abstractmethod
import anndata as ad
import logging
import numpy as np
import pandas as pd
import scanpy as sc
from scipy import sparse
from scipy.stats import hypergeom
from statsmodels.stats.multitest import multipletests


logger = logging.getLogger(__name__)


class ScoringError(Exception):
    '''
    Raised when a sample cannot be scored, e.g. when a reference gene is missing.
    '''


class ScoringEngine(ABC):

    @abstractmethod
    def co_dependency(self, reference_gene: str, matrix: ad.AnnData) -> pd.DataFrame:
        '''
        Provide a data frame with one row per target gene and columns
        target_gene, NCDI, p_value, and FDR.
        '''

    @abstractmethod
    def module_score(self, dictionary_of_names_of_gene_sets_and_lists_of_genes: dict, matrix: ad.AnnData) -> pd.DataFrame:
        '''
        Provide a data frame indexed by cell ID with one column of module scores per gene set.
        '''

    @abstractmethod
    def stemness(self, matrix: ad.AnnData, method: str) -> pd.Series:
        '''
        Provide a series of stemness indices indexed by cell ID.
        '''


def convert_to_dense_array(matrix) -> np.ndarray:
    if sparse.issparse(matrix):
        return matrix.toarray()
    return np.asarray(matrix)


def uppercase_genes(matrix: ad.AnnData) -> ad.AnnData:
    matrix = matrix.copy()
    matrix.var_names = pd.Index(matrix.var_names.astype(str).str.upper())
    matrix.var_names_make_unique()
    return matrix


class ScanpyScoringEngine(ScoringEngine):

    def __init__(self, layer: str | None = None, seed: int | None = 0):
        self.layer = layer
        self.seed = seed


    def get_expression_matrix(self, matrix: ad.AnnData):
        if self.layer is None:
            return matrix.X
        if self.layer not in matrix.layers:
            raise ScoringError(f"Sample has no layer {self.layer}.")
        return matrix.layers[self.layer]


    def co_dependency(self, reference_gene: str, matrix: ad.AnnData) -> pd.DataFrame:
        matrix = uppercase_genes(matrix)
        reference_gene = reference_gene.upper()
        if reference_gene not in matrix.var_names:
            raise ScoringError(f"Reference gene {reference_gene} is missing.")

        matrix_of_indicators_of_expression = self.get_expression_matrix(matrix) > 0
        index_of_reference_gene = matrix.var_names.get_loc(reference_gene)
        array_of_indicators_that_reference_gene_is_expressed = (
            convert_to_dense_array(matrix_of_indicators_of_expression[:, index_of_reference_gene])
            .ravel()
            .astype(bool)
        )
        number_of_cells = matrix.n_obs
        number_of_cells_expressing_reference_gene = int(array_of_indicators_that_reference_gene_is_expressed.sum())
        if number_of_cells_expressing_reference_gene == 0:
            raise ScoringError(f"Reference gene {reference_gene} is expressed in no cell.")

        array_of_numbers_of_cells_expressing_target_genes = np.asarray(
            matrix_of_indicators_of_expression.sum(axis = 0)
        ).ravel().astype(int)
        array_of_numbers_of_co_expressing_cells = np.asarray(
            matrix_of_indicators_of_expression[array_of_indicators_that_reference_gene_is_expressed].sum(axis = 0)
        ).ravel().astype(int)

        n = number_of_cells
        a = number_of_cells_expressing_reference_gene
        b = array_of_numbers_of_cells_expressing_target_genes
        k = array_of_numbers_of_co_expressing_cells
        expected_count = a * b / n
        log_of_10 = np.log(10)
        log_of_upper_tail = hypergeom.logsf(k - 1, n, a, b)
        log_of_lower_tail = hypergeom.logcdf(k, n, a, b)
        log_of_most_extreme_upper_tail = hypergeom.logsf(np.minimum(a, b) - 1, n, a, b)
        log_of_most_extreme_lower_tail = hypergeom.logcdf(np.maximum(0, a + b - n), n, a, b)
        with np.errstate(divide = "ignore", invalid = "ignore"):
            array_of_NCDIs = np.where(
                k >= expected_count,
                (-log_of_upper_tail / log_of_10) / (-log_of_most_extreme_upper_tail / log_of_10),
                -(-log_of_lower_tail / log_of_10) / (-log_of_most_extreme_lower_tail / log_of_10)
            )
        array_of_indicators_that_target_genes_are_informative = (b > 0) & (b < n)
        array_of_NCDIs = np.where(
            array_of_indicators_that_target_genes_are_informative & np.isfinite(array_of_NCDIs),
            np.clip(array_of_NCDIs, -1.0, 1.0),
            np.nan
        )
        array_of_p_values = np.where(
            array_of_indicators_that_target_genes_are_informative,
            np.minimum(1.0, 2 * np.exp(np.minimum(log_of_upper_tail, log_of_lower_tail))),
            np.nan
        )

        data_frame_of_target_genes_and_statistics = pd.DataFrame(
            {
                "target_gene": matrix.var_names.to_numpy(),
                "NCDI": array_of_NCDIs,
                "p_value": array_of_p_values,
                "number_of_cells": n,
                "number_of_cells_expressing_reference_gene": a,
                "number_of_cells_expressing_target_gene": b,
                "number_of_co_expressing_cells": k
            }
        )
        data_frame_of_target_genes_and_statistics = (
            data_frame_of_target_genes_and_statistics
            .drop(index = index_of_reference_gene)
            .reset_index(drop = True)
        )
        series_of_indicators_that_p_values_exist = data_frame_of_target_genes_and_statistics["p_value"].notna()
        data_frame_of_target_genes_and_statistics["FDR"] = np.nan
        if series_of_indicators_that_p_values_exist.any():
            data_frame_of_target_genes_and_statistics.loc[series_of_indicators_that_p_values_exist, "FDR"] = multipletests(
                data_frame_of_target_genes_and_statistics.loc[series_of_indicators_that_p_values_exist, "p_value"],
                method = "fdr_bh"
            )[1]
        return data_frame_of_target_genes_and_statistics


    def module_score(self, dictionary_of_names_of_gene_sets_and_lists_of_genes: dict, matrix: ad.AnnData) -> pd.DataFrame:
        '''
        Score every gene set with `scanpy.tl.score_genes`.
        Module scores are average expressions of genes in a set minus average expressions of
        randomly chosen control genes in the same bins of mean expression; scores are not scaled.
        '''
        matrix = uppercase_genes(matrix)
        if self.layer is not None:
            matrix.X = self.get_expression_matrix(matrix)
        data_frame_of_module_scores = pd.DataFrame(index = matrix.obs_names.copy())
        for name_of_gene_set, list_of_genes in dictionary_of_names_of_gene_sets_and_lists_of_genes.items():
            list_of_genes_in_sample = [gene for gene in list_of_genes if gene in matrix.var_names]
            if not list_of_genes_in_sample:
                raise ScoringError(f"Gene set {name_of_gene_set} has no genes in sample.")
            sc.tl.score_genes(
                matrix,
                list_of_genes_in_sample,
                score_name = "module_score",
                random_state = self.seed,
                use_raw = False
            )
            data_frame_of_module_scores[name_of_gene_set] = matrix.obs["module_score"].to_numpy(dtype = float)
        return data_frame_of_module_scores


    def stemness(self, matrix: ad.AnnData, method: str) -> pd.Series:
        '''
        Method `gene_counts` ranks cells by numbers of detected genes, which decrease with differentiation,
        and rescales ranks to [0, 1].
        Method `entropy` computes the Shannon entropy of the distribution of expression across genes of each cell,
        divided by the log of the number of genes; cells without expression get missing values.
        '''
        expression_matrix = self.get_expression_matrix(matrix)
        if method == "gene_counts":
            if matrix.n_obs < 2:
                raise ScoringError("Stemness by gene counts requires at least 2 cells.")
            series_of_numbers_of_detected_genes = pd.Series(
                np.asarray((expression_matrix > 0).sum(axis = 1)).ravel(),
                index = matrix.obs_names
            )
            series_of_ranks = series_of_numbers_of_detected_genes.rank(method = "average")
            return ((series_of_ranks - 1) / (matrix.n_obs - 1)).rename("stemness_gene_counts")

        if method == "entropy":
            if matrix.n_vars < 2:
                raise ScoringError("Stemness by entropy requires at least 2 genes.")
            if expression_matrix.min() < 0:
                raise ScoringError("Stemness by entropy requires nonnegative expression values.")
            array_of_totals = np.asarray(expression_matrix.sum(axis = 1)).ravel().astype(float)
            if sparse.issparse(expression_matrix):
                matrix_of_products = sparse.csr_matrix(expression_matrix, dtype = float, copy = True)
                matrix_of_products.data = np.where(
                    matrix_of_products.data > 0,
                    matrix_of_products.data * np.log(np.where(matrix_of_products.data > 0, matrix_of_products.data, 1.0)),
                    0.0
                )
            else:
                dense_matrix = np.asarray(expression_matrix, dtype = float)
                matrix_of_products = np.where(
                    dense_matrix > 0,
                    dense_matrix * np.log(np.where(dense_matrix > 0, dense_matrix, 1.0)),
                    0.0
                )
            array_of_sums_of_products = np.asarray(matrix_of_products.sum(axis = 1)).ravel()
            with np.errstate(divide = "ignore", invalid = "ignore"):
                array_of_entropies = np.where(
                    array_of_totals > 0,
                    np.log(np.where(array_of_totals > 0, array_of_totals, 1.0)) - array_of_sums_of_products / array_of_totals,
                    np.nan
                )
            return pd.Series(
                array_of_entropies / np.log(matrix.n_vars),
                index = matrix.obs_names,
                name = "stemness_entropy"
            )

        raise ValueError(f"Stemness method {method} is invalid.")
