'''
Aggregate normalized co-dependency indices (NCDIs) of target genes across samples.

For each reference gene and target gene, NCDIs of samples are summarized by
mean, median, population standard deviation, number of valid NCDIs, and
number of samples in which the NCDI was significant (FDR < 0.05).
Only target genes tested in more than a minimum number of samples (default 30) are retained.
Target genes whose NCDIs have undefined or zero standard deviation are removed before z scoring.

A z score is the mean NCDI divided by the standard error of the mean, SD / sqrt(n).
A two sided p value is computed from the standard normal distribution and
p values are adjusted into FDRs with the Benjamini-Hochberg procedure across retained target genes.

A target gene is a significant co-dependency partner if
its FDR is less than 0.05 and
the fraction of samples in which its NCDI was significant is greater than 0.5.
Both conditions are required.

Target genes are ranked by mean NCDI, with rank 1 for the highest mean.
Target genes with equal means are ordered uniformly at random.
'''

import logging
import numpy as np
import pandas as pd
from scipy.stats import norm
from statsmodels.stats.multitest import multipletests


logger = logging.getLogger(__name__)


def summarize_NCDIs(data_frame_of_CDI_records: pd.DataFrame, threshold_of_FDR_per_sample: float = 0.05) -> pd.DataFrame:
    data_frame = data_frame_of_CDI_records.copy()
    data_frame["NCDI_is_valid"] = data_frame["NCDI"].notna()
    data_frame["NCDI_is_significant"] = data_frame["NCDI_is_valid"] & (data_frame["FDR"] < threshold_of_FDR_per_sample)
    data_frame_of_summaries = (
        data_frame
        .groupby(["reference_gene", "target_gene"])
        .agg(
            mean_NCDI = ("NCDI", "mean"),
            median_NCDI = ("NCDI", "median"),
            standard_deviation_of_NCDI = ("NCDI", lambda series: series.std(ddof = 0)),
            number_of_samples = ("NCDI_is_valid", "sum"),
            number_of_significant_samples = ("NCDI_is_significant", "sum")
        )
        .reset_index()
    )
    data_frame_of_summaries["number_of_samples"] = data_frame_of_summaries["number_of_samples"].astype(int)
    data_frame_of_summaries["number_of_significant_samples"] = data_frame_of_summaries["number_of_significant_samples"].astype(int)
    data_frame_of_summaries["fraction_of_significant_samples"] = (
        data_frame_of_summaries["number_of_significant_samples"] /
        data_frame_of_summaries["number_of_samples"].where(data_frame_of_summaries["number_of_samples"] > 0)
    )
    return data_frame_of_summaries


def rank_genes_by_mean_co_dependency(data_frame: pd.DataFrame, random_number_generator: np.random.Generator) -> pd.Series:
    '''
    Provide a series of ranks aligned with `data_frame`.
    Rows are shuffled before a stable sort by descending mean NCDI so that ties are broken uniformly at random.
    Ranks are computed within each reference gene.
    '''
    series_of_ranks = pd.Series(np.nan, index = data_frame.index, dtype = float)
    for _, data_frame_for_reference_gene in data_frame.groupby("reference_gene"):
        array_of_permuted_positions = random_number_generator.permutation(len(data_frame_for_reference_gene))
        shuffled_data_frame = data_frame_for_reference_gene.iloc[array_of_permuted_positions]
        sorted_data_frame = shuffled_data_frame.sort_values("mean_NCDI", ascending = False, kind = "mergesort")
        series_of_ranks.loc[sorted_data_frame.index] = np.arange(1, len(sorted_data_frame) + 1)
    return series_of_ranks.astype(int)


DICTIONARY_OF_COLUMNS_AND_TYPES_OF_STATISTICS = {
    "reference_gene": "object",
    "target_gene": "object",
    "mean_NCDI": float,
    "median_NCDI": float,
    "standard_deviation_of_NCDI": float,
    "number_of_samples": int,
    "number_of_significant_samples": int,
    "fraction_of_significant_samples": float,
    "z_score": float,
    "p_value": float,
    "FDR": float,
    "significant": bool,
    "rank": int
}


def create_empty_data_frame_of_genes_and_statistics() -> pd.DataFrame:
    return pd.DataFrame(
        {
            name_of_column: pd.Series(dtype = type_of_column)
            for name_of_column, type_of_column in DICTIONARY_OF_COLUMNS_AND_TYPES_OF_STATISTICS.items()
        }
    )


def create_data_frame_of_genes_and_statistics_of_co_dependency(
    data_frame_of_CDI_records: pd.DataFrame,
    minimum_number_of_samples: int = 30,
    threshold_of_FDR_per_sample: float = 0.05,
    significance_level: float = 0.05,
    minimum_fraction_of_significant_samples: float = 0.5,
    random_number_generator: np.random.Generator | None = None
) -> pd.DataFrame:
    if random_number_generator is None:
        random_number_generator = np.random.default_rng()

    if data_frame_of_CDI_records.empty:
        logger.warning("There are no CDI records to aggregate.")
        return create_empty_data_frame_of_genes_and_statistics()

    data_frame_of_summaries = summarize_NCDIs(data_frame_of_CDI_records, threshold_of_FDR_per_sample)
    number_of_tested_genes = len(data_frame_of_summaries)
    data_frame_of_summaries = data_frame_of_summaries[
        data_frame_of_summaries["number_of_samples"] > minimum_number_of_samples
    ]
    logger.info(
        f"{len(data_frame_of_summaries)} of {number_of_tested_genes} target genes were tested in more than {minimum_number_of_samples} samples."
    )
    series_of_indicators_that_variance_is_defined = (
        data_frame_of_summaries["standard_deviation_of_NCDI"].notna() &
        (data_frame_of_summaries["standard_deviation_of_NCDI"] > 0)
    )
    if (~series_of_indicators_that_variance_is_defined).any():
        logger.warning(
            f"{(~series_of_indicators_that_variance_is_defined).sum()} target genes have NCDIs with undefined or zero standard deviation and will be removed."
        )
    data_frame = data_frame_of_summaries[series_of_indicators_that_variance_is_defined].copy().reset_index(drop = True)

    data_frame["z_score"] = data_frame["mean_NCDI"] / (
        data_frame["standard_deviation_of_NCDI"] / np.sqrt(data_frame["number_of_samples"])
    )
    data_frame["p_value"] = 2 * norm.sf(data_frame["z_score"].abs())
    data_frame["FDR"] = (
        multipletests(data_frame["p_value"], method = "fdr_bh")[1]
        if len(data_frame) > 0
        else pd.Series(dtype = float)
    )
    data_frame["significant"] = (
        (data_frame["FDR"] < significance_level) &
        (data_frame["fraction_of_significant_samples"] > minimum_fraction_of_significant_samples)
    )
    if len(data_frame) > 0:
        data_frame["rank"] = rank_genes_by_mean_co_dependency(data_frame, random_number_generator)
    else:
        data_frame["rank"] = pd.Series(dtype = int)
    logger.info(f"{int(data_frame['significant'].sum())} of {len(data_frame)} target genes are significant co-dependency partners.")
    return data_frame.sort_values(["reference_gene", "rank"]).reset_index(drop = True)


def select_significant_co_dependency_partners(data_frame_of_genes_and_statistics: pd.DataFrame) -> pd.DataFrame:
    return (
        data_frame_of_genes_and_statistics[data_frame_of_genes_and_statistics["significant"]]
        .reset_index(drop = True)
    )
