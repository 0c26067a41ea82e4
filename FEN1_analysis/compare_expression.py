'''
Compare expression of a target gene between stages of tumors and between subtypes of cells.

Expression of cells is summarized per sample (or per sample and subtype) into
- mean of log1p-transformed expression,
- median of raw expression,
- fraction of cells expressing the gene (expression > 0), and
- Gini coefficient of raw expression.

A sample ID is parsed into a study and a stage.
The study is the sample ID with its stage-code suffix removed.
The stage is the single letter stage code in the suffix mapped to a name of a stage (e.g., P to Primary).

Within each study, the chosen metric is standardized to mean 0 and standard deviation 1
to remove batch effects of studies.
Standardized metrics are compared
- between stages with a 2 sided Mann-Whitney U Test / Wilcoxon Rank Sum Test and
- between subtypes with a Kruskal-Wallis H Test,
within each study and with all studies pooled.
A test with 5 or fewer usable rows or with fewer than 2 nonempty groups is reported as unavailable.

p values are raw. No correction for multiple testing is applied across the tests of studies and the pooled test.
'''

import logging
import numpy as np
import pandas as pd
import re
from scipy.stats import kruskal, mannwhitneyu


logger = logging.getLogger(__name__)


LIST_OF_METRICS = [
    "mean_of_log1p_expression",
    "median_expression",
    "fraction_of_expressing_cells",
    "Gini_coefficient"
]


def compute_Gini_coefficient(values) -> float:
    array_of_values = np.sort(np.asarray(values, dtype = float))
    array_of_values = array_of_values[~np.isnan(array_of_values)]
    number_of_values = len(array_of_values)
    total = array_of_values.sum()
    if number_of_values == 0 or total <= 0:
        return np.nan
    array_of_positions = np.arange(1, number_of_values + 1)
    return float(
        2 * np.sum(array_of_positions * array_of_values) / (number_of_values * total) -
        (number_of_values + 1) / number_of_values
    )


def summarize_expression(series_of_expressions: pd.Series) -> pd.Series:
    series_of_expressions = series_of_expressions.dropna()
    return pd.Series(
        {
            "number_of_cells": len(series_of_expressions),
            "mean_of_log1p_expression": np.log1p(series_of_expressions).mean(),
            "median_expression": series_of_expressions.median(),
            "fraction_of_expressing_cells": (series_of_expressions > 0).mean() if len(series_of_expressions) > 0 else np.nan,
            "Gini_coefficient": compute_Gini_coefficient(series_of_expressions)
        }
    )


def parse_study_and_stage(
    sample_ID: str,
    pattern_of_stage_suffix: str,
    dictionary_of_stage_codes_and_stages: dict[str, str]
) -> tuple[str, str | None]:
    match = re.search(pattern_of_stage_suffix, sample_ID)
    if match is None:
        return sample_ID, None
    study = sample_ID[:match.start()]
    stage = dictionary_of_stage_codes_and_stages.get(match.group("stage"))
    return study, stage


def create_data_frame_of_samples_and_expression_metrics(
    module_score_table: pd.DataFrame,
    gene: str,
    pattern_of_stage_suffix: str,
    dictionary_of_stage_codes_and_stages: dict[str, str],
    by_subtype: bool = False
) -> pd.DataFrame:
    list_of_keys = ["sample_ID", "subtype"] if by_subtype else ["sample_ID"]
    data_frame = module_score_table.dropna(subset = list_of_keys)
    list_of_rows = []
    for key, data_frame_for_key in data_frame.groupby(list_of_keys, sort = True):
        key = key if isinstance(key, tuple) else (key,)
        # Expression failed for this sample.
        if data_frame_for_key[gene].isna().all():
            continue
        series_of_metrics = summarize_expression(data_frame_for_key[gene])
        list_of_rows.append({**dict(zip(list_of_keys, key)), **series_of_metrics.to_dict()})
    data_frame_of_samples_and_metrics = pd.DataFrame(
        list_of_rows,
        columns = list_of_keys + ["number_of_cells"] + LIST_OF_METRICS
    ).astype({name_of_column: float for name_of_column in ["number_of_cells"] + LIST_OF_METRICS})
    list_of_tuples_of_studies_and_stages = [
        parse_study_and_stage(sample_ID, pattern_of_stage_suffix, dictionary_of_stage_codes_and_stages)
        for sample_ID in data_frame_of_samples_and_metrics["sample_ID"]
    ]
    data_frame_of_samples_and_metrics.insert(1, "study", [study for study, _ in list_of_tuples_of_studies_and_stages])
    data_frame_of_samples_and_metrics.insert(2, "stage", [stage for _, stage in list_of_tuples_of_studies_and_stages])
    data_frame_of_samples_and_metrics.insert(0, "gene", gene)
    return data_frame_of_samples_and_metrics


def standardize_within_study(data_frame: pd.DataFrame, metric: str) -> pd.DataFrame:
    '''
    Add a column `standardized_<metric>` with metrics z scored within studies.
    Metrics of a study with undefined or zero standard deviation become missing and are unusable.
    '''
    def z_score(series: pd.Series) -> pd.Series:
        standard_deviation = series.std(ddof = 1)
        if pd.isna(standard_deviation) or standard_deviation == 0:
            return pd.Series(np.nan, index = series.index)
        return (series - series.mean()) / standard_deviation

    data_frame = data_frame.copy()
    data_frame[f"standardized_{metric}"] = data_frame.groupby("study")[metric].transform(z_score)
    return data_frame


def perform_rank_test(
    dictionary_of_groups_and_values: dict[str, np.ndarray],
    number_of_usable_rows: int,
    minimum_number_of_usable_rows: int
) -> tuple[float, float, str]:
    '''
    Provide a statistic, a p value, and a status.
    2 groups are compared with a Mann-Whitney U Test; more groups are compared with a Kruskal-Wallis H Test.
    '''
    if number_of_usable_rows <= minimum_number_of_usable_rows:
        return np.nan, np.nan, f"unavailable: {number_of_usable_rows} usable rows are not more than {minimum_number_of_usable_rows}"
    list_of_arrays = [array for array in dictionary_of_groups_and_values.values() if len(array) > 0]
    if len(list_of_arrays) < 2:
        return np.nan, np.nan, "unavailable: fewer than 2 nonempty groups"
    try:
        if len(dictionary_of_groups_and_values) == 2:
            statistic, p_value = mannwhitneyu(list_of_arrays[0], list_of_arrays[1], alternative = "two-sided")
        else:
            statistic, p_value = kruskal(*list_of_arrays)
    except ValueError as error:
        return np.nan, np.nan, f"unavailable: {error}"
    if pd.isna(p_value):
        return np.nan, np.nan, "unavailable: test is undefined for these values"
    return float(statistic), float(p_value), "tested"


def compare_groups(
    data_frame: pd.DataFrame,
    metric: str,
    name_of_column_of_groups: str,
    list_of_groups: list[str],
    minimum_number_of_usable_rows: int = 5
) -> pd.DataFrame:
    name_of_column_of_values = f"standardized_{metric}"
    list_of_dictionaries_of_studies_and_statistics = []
    list_of_tuples_of_studies_and_data_frames = [
        (study, data_frame_for_study)
        for study, data_frame_for_study in data_frame.groupby("study", sort = True)
    ] + [("pooled", data_frame)]
    for study, data_frame_for_study in list_of_tuples_of_studies_and_data_frames:
        data_frame_of_usable_rows = data_frame_for_study.dropna(subset = [name_of_column_of_values, name_of_column_of_groups])
        data_frame_of_usable_rows = data_frame_of_usable_rows[data_frame_of_usable_rows[name_of_column_of_groups].isin(list_of_groups)]
        dictionary_of_groups_and_values = {
            group: data_frame_of_usable_rows.loc[
                data_frame_of_usable_rows[name_of_column_of_groups] == group,
                name_of_column_of_values
            ].to_numpy(dtype = float)
            for group in list_of_groups
        }
        statistic, p_value, status = perform_rank_test(
            dictionary_of_groups_and_values,
            len(data_frame_of_usable_rows),
            minimum_number_of_usable_rows
        )
        if status != "tested":
            logger.warning(f"Comparison by {name_of_column_of_groups} of {metric} for study {study} is {status}.")
        dictionary_of_studies_and_statistics = dict(
            study = study,
            metric = metric,
            number_of_usable_rows = len(data_frame_of_usable_rows)
        )
        for group, array_of_values in dictionary_of_groups_and_values.items():
            dictionary_of_studies_and_statistics[f"number_of_rows_for_{group}"] = len(array_of_values)
            dictionary_of_studies_and_statistics[f"median_for_{group}"] = (
                np.median(array_of_values) if len(array_of_values) > 0 else np.nan
            )
        dictionary_of_studies_and_statistics["statistic"] = statistic
        dictionary_of_studies_and_statistics["p_value"] = p_value
        dictionary_of_studies_and_statistics["status"] = status
        list_of_dictionaries_of_studies_and_statistics.append(dictionary_of_studies_and_statistics)
    return pd.DataFrame(list_of_dictionaries_of_studies_and_statistics)


def compare_by_stage(
    data_frame_of_samples_and_metrics: pd.DataFrame,
    metric: str,
    list_of_stages: list[str],
    minimum_number_of_usable_rows: int = 5
) -> pd.DataFrame:
    data_frame = standardize_within_study(data_frame_of_samples_and_metrics, metric)
    data_frame_of_comparisons = compare_groups(data_frame, metric, "stage", list_of_stages, minimum_number_of_usable_rows)
    data_frame_of_comparisons.insert(1, "test", "Mann-Whitney U")
    return data_frame_of_comparisons


def compare_by_subtype(
    data_frame_of_samples_subtypes_and_metrics: pd.DataFrame,
    metric: str,
    list_of_subtypes: list[str],
    minimum_number_of_usable_rows: int = 5
) -> pd.DataFrame:
    data_frame = standardize_within_study(data_frame_of_samples_subtypes_and_metrics, metric)
    data_frame_of_comparisons = compare_groups(data_frame, metric, "subtype", list_of_subtypes, minimum_number_of_usable_rows)
    data_frame_of_comparisons.insert(1, "test", "Kruskal-Wallis H")
    return data_frame_of_comparisons
