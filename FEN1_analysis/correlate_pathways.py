'''
Correlate module scores of pathways with expression of a reference gene within each sample and
test whether correlations are systematically nonzero across samples.

Within a sample, a Spearman correlation matrix is computed over module scores of all pathways and
expression of the reference gene using complete observations:
a cell missing any value in any of these columns is excluded from the whole matrix.
A sample with fewer complete cells than a minimum (3 by default) is skipped.

Across samples, for each pathway, the correlations of samples are summarized by their mean and
tested against 0 with a one sample Wilcoxon Signed Rank Test.
p values are adjusted with the Bonferroni correction across pathways tested.
A pathway is significant if its adjusted p value is less than 0.05.
'''

import logging
import numpy as np
import pandas as pd
from scipy.stats import wilcoxon
from statsmodels.stats.multitest import multipletests


logger = logging.getLogger(__name__)


def create_data_frame_of_correlations(
    module_score_table: pd.DataFrame,
    list_of_pathways: list[str],
    reference_gene: str,
    minimum_number_of_complete_cells: int = 3
) -> pd.DataFrame:
    list_of_data_frames_of_correlations = []
    list_of_columns = list(list_of_pathways) + [reference_gene]
    for sample_ID, data_frame_for_sample in module_score_table.groupby("sample_ID", sort = True):
        data_frame_of_complete_observations = data_frame_for_sample[list_of_columns].dropna(how = "any")
        if len(data_frame_of_complete_observations) < minimum_number_of_complete_cells:
            logger.warning(
                f"Sample {sample_ID} has {len(data_frame_of_complete_observations)} cells with complete observations and will be skipped."
            )
            continue
        correlation_matrix = data_frame_of_complete_observations.corr(method = "spearman")
        list_of_data_frames_of_correlations.append(
            pd.DataFrame(
                {
                    "pathway": list(list_of_pathways),
                    "sample_ID": sample_ID,
                    "feature": reference_gene,
                    "correlation": correlation_matrix.loc[list(list_of_pathways), reference_gene].to_numpy(dtype = float),
                    "number_of_cells": len(data_frame_of_complete_observations)
                }
            )
        )
    if not list_of_data_frames_of_correlations:
        return pd.DataFrame(columns = ["pathway", "sample_ID", "feature", "correlation", "number_of_cells"])
    return pd.concat(list_of_data_frames_of_correlations, ignore_index = True)


def perform_Wilcoxon_Signed_Rank_Test(series_of_correlations: pd.Series) -> tuple[float, str]:
    '''
    Provide a p value of a one sample Wilcoxon Signed Rank Test and a status.
    If the test cannot be performed, the p value is missing and the status explains why.
    '''
    array_of_correlations = series_of_correlations.dropna().to_numpy(dtype = float)
    if len(array_of_correlations) == 0:
        return np.nan, "unavailable: no correlations"
    if np.all(array_of_correlations == 0):
        return np.nan, "unavailable: all correlations are 0"
    try:
        _, p_value = wilcoxon(array_of_correlations)
    except ValueError as error:
        return np.nan, f"unavailable: {error}"
    return float(p_value), "tested"


def create_data_frame_of_pathways_and_statistics(
    data_frame_of_correlations: pd.DataFrame,
    significance_level: float = 0.05
) -> pd.DataFrame:
    list_of_dictionaries_of_pathways_and_statistics = []
    for pathway, data_frame_for_pathway in data_frame_of_correlations.groupby("pathway", sort = True):
        series_of_correlations = data_frame_for_pathway["correlation"]
        p_value, status = perform_Wilcoxon_Signed_Rank_Test(series_of_correlations)
        list_of_dictionaries_of_pathways_and_statistics.append(
            dict(
                pathway = pathway,
                number_of_samples = int(series_of_correlations.notna().sum()),
                mean_correlation = series_of_correlations.mean(),
                p_value = p_value,
                status = status
            )
        )
    data_frame = pd.DataFrame(
        list_of_dictionaries_of_pathways_and_statistics,
        columns = ["pathway", "number_of_samples", "mean_correlation", "p_value", "status"]
    )
    data_frame["adjusted_p_value"] = np.nan
    series_of_indicators_that_pathways_were_tested = data_frame["p_value"].notna()
    if series_of_indicators_that_pathways_were_tested.any():
        data_frame.loc[series_of_indicators_that_pathways_were_tested, "adjusted_p_value"] = multipletests(
            data_frame.loc[series_of_indicators_that_pathways_were_tested, "p_value"],
            method = "bonferroni"
        )[1]
    data_frame["significant"] = data_frame["adjusted_p_value"] < significance_level
    logger.info(
        f"{int(data_frame['significant'].sum())} of {int(series_of_indicators_that_pathways_were_tested.sum())} tested pathways are significant."
    )
    return (
        data_frame
        .sort_values(["adjusted_p_value", "pathway"], na_position = "last")
        .reset_index(drop = True)
    )
