'''
Usage
pytest -q testing/test_aggregate_co_dependencies.py

Verify z scores, p values, FDRs, significance, and ranks of target genes aggregated across samples.
'''

import numpy as np
import pandas as pd
import pytest
from scipy.stats import norm
from statsmodels.stats.multitest import multipletests

from FEN1_analysis.aggregate_co_dependencies import (
    create_data_frame_of_genes_and_statistics_of_co_dependency,
    select_significant_co_dependency_partners,
    summarize_NCDIs
)


NUMBER_OF_SAMPLES = 31


def create_records(target_gene: str, list_of_NCDIs: list[float], FDR: float) -> list[dict]:
    return [
        dict(reference_gene = "FEN1", target_gene = target_gene, sample_ID = f"sample_{i}", NCDI = NCDI, FDR = FDR)
        for i, NCDI in enumerate(list_of_NCDIs)
    ]


@pytest.fixture
def data_frame_of_CDI_records() -> pd.DataFrame:
    list_of_records = (
        create_records("A", [0.5 + 0.1 * (i % 2) for i in range(NUMBER_OF_SAMPLES)], 0.01) +
        create_records("B", [0.5 + 0.1 * (i % 2) for i in range(NUMBER_OF_SAMPLES - 1)], 0.01) +
        create_records("C", [0.25] * NUMBER_OF_SAMPLES, 0.01) +
        create_records("D", [0.4 + 0.1 * (i % 2) for i in range(NUMBER_OF_SAMPLES)], 0.5) +
        create_records("E", [0.1 * (i % 3) - 0.1 for i in range(NUMBER_OF_SAMPLES)], 0.5) +
        create_records("F", [0.1 * (i % 3) - 0.1 for i in range(NUMBER_OF_SAMPLES)], 0.5) +
        create_records("G", [np.nan] * NUMBER_OF_SAMPLES, np.nan)
    )
    return pd.DataFrame(list_of_records)


def test_that_genes_tested_in_too_few_samples_or_with_constant_NCDIs_are_excluded(data_frame_of_CDI_records):
    data_frame = create_data_frame_of_genes_and_statistics_of_co_dependency(
        data_frame_of_CDI_records,
        random_number_generator = np.random.default_rng(0)
    )
    assert set(data_frame["target_gene"]) == {"A", "D", "E", "F"}


def test_that_missing_NCDIs_are_not_counted(data_frame_of_CDI_records):
    data_frame = summarize_NCDIs(data_frame_of_CDI_records).set_index("target_gene")
    assert data_frame.at["G", "number_of_samples"] == 0
    assert data_frame.at["A", "number_of_samples"] == NUMBER_OF_SAMPLES
    assert data_frame.at["A", "fraction_of_significant_samples"] == 1.0


def test_that_z_scores_p_values_and_FDRs_have_closed_forms(data_frame_of_CDI_records):
    data_frame = create_data_frame_of_genes_and_statistics_of_co_dependency(
        data_frame_of_CDI_records,
        random_number_generator = np.random.default_rng(0)
    )
    array_of_NCDIs = np.array([0.5 + 0.1 * (i % 2) for i in range(NUMBER_OF_SAMPLES)])
    expected_z_score = array_of_NCDIs.mean() / (array_of_NCDIs.std(ddof = 0) / np.sqrt(NUMBER_OF_SAMPLES))
    row = data_frame.set_index("target_gene").loc["A"]
    assert row["z_score"] == pytest.approx(expected_z_score)
    assert row["p_value"] == pytest.approx(2 * norm.sf(abs(expected_z_score)))
    np.testing.assert_allclose(data_frame["FDR"], multipletests(data_frame["p_value"], method = "fdr_bh")[1])


def test_that_significance_requires_FDR_and_fraction_of_significant_samples(data_frame_of_CDI_records):
    data_frame = create_data_frame_of_genes_and_statistics_of_co_dependency(
        data_frame_of_CDI_records,
        random_number_generator = np.random.default_rng(0)
    ).set_index("target_gene")
    assert data_frame.at["A", "significant"]
    # D has a small FDR but is significant in no sample.
    assert data_frame.at["D", "FDR"] < 0.05
    assert not data_frame.at["D", "significant"]
    assert not data_frame.at["E", "significant"]
    assert list(select_significant_co_dependency_partners(data_frame.reset_index())["target_gene"]) == ["A"]


@pytest.mark.parametrize("seed", range(5))
def test_that_ranks_are_a_permutation_ordered_by_mean(data_frame_of_CDI_records, seed):
    data_frame = create_data_frame_of_genes_and_statistics_of_co_dependency(
        data_frame_of_CDI_records,
        random_number_generator = np.random.default_rng(seed)
    ).set_index("target_gene")
    assert sorted(data_frame["rank"]) == [1, 2, 3, 4]
    assert data_frame.at["A", "rank"] == 1
    assert data_frame.at["D", "rank"] == 2
    assert {data_frame.at["E", "rank"], data_frame.at["F", "rank"]} == {3, 4}


def test_that_ties_are_broken_both_ways_across_seeds(data_frame_of_CDI_records):
    set_of_ranks_of_E = {
        create_data_frame_of_genes_and_statistics_of_co_dependency(
            data_frame_of_CDI_records,
            random_number_generator = np.random.default_rng(seed)
        ).set_index("target_gene").at["E", "rank"]
        for seed in range(20)
    }
    assert set_of_ranks_of_E == {3, 4}


def test_that_same_seed_yields_same_ranks(data_frame_of_CDI_records):
    list_of_data_frames = [
        create_data_frame_of_genes_and_statistics_of_co_dependency(
            data_frame_of_CDI_records,
            random_number_generator = np.random.default_rng(7)
        )
        for _ in range(2)
    ]
    pd.testing.assert_frame_equal(list_of_data_frames[0], list_of_data_frames[1])


def test_that_no_CDI_records_yield_empty_typed_statistics():
    data_frame_of_CDI_records = pd.DataFrame(
        {
            "reference_gene": pd.Series(dtype = "object"),
            "target_gene": pd.Series(dtype = "object"),
            "sample_ID": pd.Series(dtype = "object"),
            "NCDI": pd.Series(dtype = float),
            "p_value": pd.Series(dtype = float),
            "FDR": pd.Series(dtype = float)
        }
    )
    data_frame = create_data_frame_of_genes_and_statistics_of_co_dependency(data_frame_of_CDI_records)
    assert data_frame.empty
    assert {"z_score", "FDR", "significant", "rank"} <= set(data_frame.columns)
    assert data_frame["significant"].dtype == bool
    assert select_significant_co_dependency_partners(data_frame).empty
