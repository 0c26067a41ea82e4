'''
Assign each cell to one of 4 subtypes AC, OPC, MES, and NPC.

Module scores of subtype programs with 2 variants (MES1 and MES2; NPC1 and NPC2) are combined by unweighted mean.
A cell is assigned the subtype with the maximum combined score.
If combined scores of multiple subtypes equal the maximum, the cell is assigned the first of these subtypes
in the order AC, OPC, MES, NPC.
A cell missing any combined score is not assigned a subtype.
'''

import logging
import pandas as pd


logger = logging.getLogger(__name__)


LIST_OF_SUBTYPES = ["AC", "OPC", "MES", "NPC"]


def combine_subtype_program_scores(
    module_score_table: pd.DataFrame,
    dictionary_of_subtypes_and_programs: dict[str, list[str]]
) -> pd.DataFrame:
    data_frame_of_combined_scores = pd.DataFrame(index = module_score_table.index)
    for subtype in LIST_OF_SUBTYPES:
        list_of_programs = dictionary_of_subtypes_and_programs[subtype]
        list_of_missing_programs = [program for program in list_of_programs if program not in module_score_table.columns]
        if list_of_missing_programs:
            raise KeyError(f"Module scores of programs {list_of_missing_programs} of subtype {subtype} are missing.")
        data_frame_of_combined_scores[subtype] = module_score_table[list_of_programs].mean(axis = 1, skipna = False)
    return data_frame_of_combined_scores


def assign_subtypes(data_frame_of_combined_scores: pd.DataFrame) -> pd.Series:
    data_frame_of_combined_scores = data_frame_of_combined_scores[LIST_OF_SUBTYPES]
    series_of_indicators_that_scores_are_complete = data_frame_of_combined_scores.notna().all(axis = 1)
    series_of_subtypes = pd.Series(None, index = data_frame_of_combined_scores.index, dtype = "object", name = "subtype")
    if series_of_indicators_that_scores_are_complete.any():
        # idxmax returns the first column in the order of LIST_OF_SUBTYPES among equal maxima.
        series_of_subtypes.loc[series_of_indicators_that_scores_are_complete] = (
            data_frame_of_combined_scores.loc[series_of_indicators_that_scores_are_complete].idxmax(axis = 1)
        )
    return series_of_subtypes


def add_subtypes(
    module_score_table: pd.DataFrame,
    dictionary_of_subtypes_and_programs: dict[str, list[str]]
) -> pd.DataFrame:
    data_frame_of_combined_scores = combine_subtype_program_scores(module_score_table, dictionary_of_subtypes_and_programs)
    module_score_table = module_score_table.copy()
    for subtype in LIST_OF_SUBTYPES:
        module_score_table[f"{subtype}_combined_score"] = data_frame_of_combined_scores[subtype]
    module_score_table["subtype"] = assign_subtypes(data_frame_of_combined_scores)
    logger.info(
        "Numbers of cells by subtype are " +
        ", ".join(
            f"{subtype}: {int((module_score_table['subtype'] == subtype).sum())}"
            for subtype in LIST_OF_SUBTYPES
        ) +
        f", unassigned: {int(module_score_table['subtype'].isna().sum())}."
    )
    return module_score_table


def create_data_frame_of_numbers_of_cells_by_sample_and_subtype(module_score_table: pd.DataFrame) -> pd.DataFrame:
    module_score_table = module_score_table.dropna(subset = ["subtype"])
    if module_score_table.empty:
        return pd.DataFrame(columns = ["sample_ID"] + LIST_OF_SUBTYPES)
    data_frame = (
        module_score_table
        .groupby(["sample_ID", "subtype"])
        .size()
        .unstack(fill_value = 0)
        .reindex(columns = LIST_OF_SUBTYPES, fill_value = 0)
    )
    data_frame.columns.name = None
    return data_frame.reset_index()
