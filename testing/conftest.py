import anndata as ad
import numpy as np
import pandas as pd
import pytest

from FEN1_analysis.scoring_engine import ScoringEngine, ScoringError


def create_sample(array_of_expressions: np.ndarray, list_of_genes: list[str], prefix_of_cell_IDs: str = "cell") -> ad.AnnData:
    return ad.AnnData(
        X = np.asarray(array_of_expressions, dtype = float),
        obs = pd.DataFrame(index = [f"{prefix_of_cell_IDs}_{i}" for i in range(len(array_of_expressions))]),
        var = pd.DataFrame(index = list_of_genes)
    )


class FakeScoringEngine(ScoringEngine):
    '''
    Deterministic scoring engine that needs no binning of genes.
    '''

    def co_dependency(self, reference_gene, matrix):
        if reference_gene not in matrix.var_names:
            raise ScoringError(f"Reference gene {reference_gene} is missing.")
        array_of_expressions = np.asarray(matrix.X, dtype = float)
        mean_of_reference_gene = array_of_expressions[:, matrix.var_names.get_loc(reference_gene)].mean()
        list_of_target_genes = [gene for gene in matrix.var_names if gene != reference_gene]
        return pd.DataFrame(
            {
                "target_gene": list_of_target_genes,
                "NCDI": [
                    np.tanh(array_of_expressions[:, matrix.var_names.get_loc(gene)].mean() - mean_of_reference_gene)
                    for gene in list_of_target_genes
                ],
                "p_value": 0.01,
                "FDR": 0.01
            }
        )

    def module_score(self, dictionary_of_names_of_gene_sets_and_lists_of_genes, matrix):
        array_of_expressions = np.asarray(matrix.X, dtype = float)
        data_frame_of_module_scores = pd.DataFrame(index = matrix.obs_names.copy())
        for name_of_gene_set, list_of_genes in dictionary_of_names_of_gene_sets_and_lists_of_genes.items():
            list_of_indices = [matrix.var_names.get_loc(gene) for gene in list_of_genes if gene in matrix.var_names]
            if not list_of_indices:
                raise ScoringError(f"Gene set {name_of_gene_set} has no genes in sample.")
            data_frame_of_module_scores[name_of_gene_set] = array_of_expressions[:, list_of_indices].mean(axis = 1)
        return data_frame_of_module_scores

    def stemness(self, matrix, method):
        if method != "gene_counts":
            raise ValueError(f"Stemness method {method} is invalid.")
        series_of_numbers_of_detected_genes = pd.Series(
            (np.asarray(matrix.X) > 0).sum(axis = 1),
            index = matrix.obs_names
        )
        return series_of_numbers_of_detected_genes.rank() / matrix.n_obs


@pytest.fixture
def fake_engine() -> FakeScoringEngine:
    return FakeScoringEngine()
