#!/usr/bin/env python3
'''
`run_analysis.py`

Compute co-expression and pathway correlation statistics of FEN1 across samples of
single-cell RNA sequencing data of glioblastomas.

Pipeline:
1. Load gene sets from catalogs of subtype programs, hallmark pathways, and DNA repair pathways.
2. Load samples and group samples by study.
3. For each sample, compute co-dependency indices between FEN1 and every other gene,
   module scores of every gene set, 2 stemness indices, and expression of FEN1.
4. Aggregate co-dependency indices across samples into z scores, p values, and FDRs.
5. Correlate module scores with expression of FEN1 within samples and test correlations across samples.
6. Assign cells to subtypes AC, OPC, MES, and NPC.
7. Compare expression of FEN1 between primary and recurrent tumors and between subtypes.
8. Create files of CSVs and plots.

Usage
-----
python -m FEN1_analysis.run_analysis --root /path/to/project
python -m FEN1_analysis.run_analysis --root /path/to/project --configuration configuration.json --seed 1

A failure to load the collection of samples or a required catalog ends the run.
A failure to score a sample affects only that sample's sub-result.
'''

import argparse
import logging
import numpy as np
import pandas as pd

from FEN1_analysis.aggregate_co_dependencies import (
    create_data_frame_of_genes_and_statistics_of_co_dependency,
    select_significant_co_dependency_partners
)
from FEN1_analysis.classify_subtypes import (
    LIST_OF_SUBTYPES,
    add_subtypes,
    create_data_frame_of_numbers_of_cells_by_sample_and_subtype
)
from FEN1_analysis.compare_expression import (
    compare_by_stage,
    compare_by_subtype,
    create_data_frame_of_samples_and_expression_metrics,
    standardize_within_study
)
from FEN1_analysis.config import Configuration, Paths
from FEN1_analysis.correlate_pathways import (
    create_data_frame_of_correlations,
    create_data_frame_of_pathways_and_statistics
)
from FEN1_analysis.load_gene_sets import load_gene_sets
from FEN1_analysis.load_samples import group_samples_by_study, load_samples
from FEN1_analysis.plot import (
    create_bar_plot_of_pathway_correlations,
    create_box_plots_by_study,
    create_rank_plot,
    create_scatter_plot_of_stemness_vs_expression,
    create_volcano_plot
)
from FEN1_analysis.score_samples import score_samples
from FEN1_analysis.scoring_engine import ScanpyScoringEngine, ScoringEngine


logger = logging.getLogger(__name__)


def run_analysis(
    paths: Paths,
    configuration: Configuration,
    engine: ScoringEngine | None = None,
    plots_will_be_created: bool = True
) -> dict[str, pd.DataFrame]:
    paths.ensure_dependencies_for_analysis_exist()
    if engine is None:
        engine = ScanpyScoringEngine(layer = configuration.layer, seed = configuration.seed)
    random_number_generator = np.random.default_rng(configuration.seed)

    list_of_gene_set_sources = configuration.list_of_gene_set_sources or paths.create_list_of_default_gene_set_sources()
    dictionary_of_names_of_gene_sets_and_lists_of_genes = load_gene_sets(list_of_gene_set_sources)
    list_of_pathways = list(dictionary_of_names_of_gene_sets_and_lists_of_genes)

    dictionary_of_sample_IDs_and_samples = load_samples(paths.samples, configuration.name_of_column_of_sample_IDs)
    dictionary_of_studies_and_samples = group_samples_by_study(
        dictionary_of_sample_IDs_and_samples,
        configuration.list_of_study_substrings
    )

    data_frame_of_CDI_records, module_score_table, data_frame_of_failures = score_samples(
        dictionary_of_sample_IDs_and_samples,
        engine,
        configuration,
        dictionary_of_names_of_gene_sets_and_lists_of_genes
    )
    data_frame_of_CDI_records.to_csv(paths.CDI_records, index = False)
    data_frame_of_failures.to_csv(paths.failures, index = False)

    data_frame_of_genes_and_statistics = create_data_frame_of_genes_and_statistics_of_co_dependency(
        data_frame_of_CDI_records,
        minimum_number_of_samples = configuration.minimum_number_of_samples,
        threshold_of_FDR_per_sample = configuration.threshold_of_FDR_per_sample,
        significance_level = configuration.significance_level,
        minimum_fraction_of_significant_samples = configuration.minimum_fraction_of_significant_samples,
        random_number_generator = random_number_generator
    )
    data_frame_of_significant_partners = select_significant_co_dependency_partners(data_frame_of_genes_and_statistics)
    data_frame_of_genes_and_statistics.to_csv(paths.co_dependency_statistics, index = False)
    data_frame_of_significant_partners.to_csv(paths.significant_co_dependency_partners, index = False)

    list_of_data_frames_of_correlations = []
    list_of_data_frames_of_pathways_and_statistics = []
    for reference_gene in configuration.list_of_reference_genes:
        data_frame_of_correlations = create_data_frame_of_correlations(
            module_score_table,
            list_of_pathways,
            reference_gene,
            configuration.minimum_number_of_complete_cells
        )
        data_frame_of_pathways_and_statistics = create_data_frame_of_pathways_and_statistics(
            data_frame_of_correlations,
            configuration.significance_level
        )
        data_frame_of_pathways_and_statistics.insert(0, "reference_gene", reference_gene)
        list_of_data_frames_of_correlations.append(data_frame_of_correlations)
        list_of_data_frames_of_pathways_and_statistics.append(data_frame_of_pathways_and_statistics)
    data_frame_of_correlations = pd.concat(list_of_data_frames_of_correlations, ignore_index = True)
    data_frame_of_pathways_and_statistics = pd.concat(list_of_data_frames_of_pathways_and_statistics, ignore_index = True)
    data_frame_of_correlations.to_csv(paths.pathway_correlations, index = False)
    data_frame_of_pathways_and_statistics.to_csv(paths.pathway_statistics, index = False)

    try:
        module_score_table = add_subtypes(module_score_table, configuration.dictionary_of_subtypes_and_programs)
    except KeyError as error:
        logger.warning(f"Subtypes will not be assigned: {error}")
        module_score_table = module_score_table.assign(subtype = None)
    data_frame_of_numbers_of_cells_by_sample_and_subtype = create_data_frame_of_numbers_of_cells_by_sample_and_subtype(
        module_score_table
    )
    module_score_table.to_csv(paths.module_score_table, index = False)
    data_frame_of_numbers_of_cells_by_sample_and_subtype.to_csv(paths.numbers_of_cells_by_sample_and_subtype, index = False)

    list_of_stages = list(configuration.dictionary_of_stage_codes_and_stages.values())
    list_of_data_frames_of_stage_comparisons = []
    list_of_data_frames_of_subtype_comparisons = []
    dictionary_of_genes_and_data_frames_of_metrics = {}
    for gene in configuration.list_of_target_genes:
        data_frame_of_samples_and_metrics = create_data_frame_of_samples_and_expression_metrics(
            module_score_table,
            gene,
            configuration.pattern_of_stage_suffix,
            configuration.dictionary_of_stage_codes_and_stages
        )
        data_frame_of_samples_subtypes_and_metrics = create_data_frame_of_samples_and_expression_metrics(
            module_score_table,
            gene,
            configuration.pattern_of_stage_suffix,
            configuration.dictionary_of_stage_codes_and_stages,
            by_subtype = True
        )
        data_frame_of_stage_comparisons = compare_by_stage(
            data_frame_of_samples_and_metrics,
            configuration.metric,
            list_of_stages,
            configuration.minimum_number_of_usable_rows
        )
        data_frame_of_subtype_comparisons = compare_by_subtype(
            data_frame_of_samples_subtypes_and_metrics,
            configuration.metric,
            LIST_OF_SUBTYPES,
            configuration.minimum_number_of_usable_rows
        )
        data_frame_of_stage_comparisons.insert(0, "gene", gene)
        data_frame_of_subtype_comparisons.insert(0, "gene", gene)
        list_of_data_frames_of_stage_comparisons.append(data_frame_of_stage_comparisons)
        list_of_data_frames_of_subtype_comparisons.append(data_frame_of_subtype_comparisons)
        dictionary_of_genes_and_data_frames_of_metrics[gene] = (
            data_frame_of_samples_and_metrics,
            data_frame_of_samples_subtypes_and_metrics
        )
    data_frame_of_stage_comparisons = pd.concat(list_of_data_frames_of_stage_comparisons, ignore_index = True)
    data_frame_of_subtype_comparisons = pd.concat(list_of_data_frames_of_subtype_comparisons, ignore_index = True)
    data_frame_of_stage_comparisons.to_csv(paths.stage_comparisons, index = False)
    data_frame_of_subtype_comparisons.to_csv(paths.subtype_comparisons, index = False)

    data_frame_of_summary = pd.DataFrame(
        [
            ("number_of_samples_loaded", len(dictionary_of_sample_IDs_and_samples)),
            *[
                (f"number_of_samples_of_study_{study}", len(dictionary_of_samples))
                for study, dictionary_of_samples in dictionary_of_studies_and_samples.items()
            ],
            ("number_of_gene_sets", len(list_of_pathways)),
            ("number_of_samples_with_CDI_records", data_frame_of_CDI_records["sample_ID"].nunique()),
            ("number_of_samples_with_module_scores", module_score_table["sample_ID"].nunique()),
            ("number_of_cells_with_module_scores", len(module_score_table)),
            ("number_of_target_genes_aggregated", len(data_frame_of_genes_and_statistics)),
            ("number_of_significant_co_dependency_partners", len(data_frame_of_significant_partners)),
            ("number_of_pathways_tested", int(data_frame_of_pathways_and_statistics["p_value"].notna().sum())),
            ("number_of_significant_pathways", int(data_frame_of_pathways_and_statistics["significant"].sum())),
            ("number_of_failed_sub_analyses", len(data_frame_of_failures))
        ],
        columns = ["quantity", "value"]
    )
    data_frame_of_summary.to_csv(paths.summary, index = False)
    for quantity, value in data_frame_of_summary.itertuples(index = False):
        logger.info(f"{quantity}: {value}")

    if plots_will_be_created:
        create_plots(
            paths,
            configuration,
            data_frame_of_genes_and_statistics,
            data_frame_of_pathways_and_statistics,
            module_score_table,
            dictionary_of_genes_and_data_frames_of_metrics
        )

    return dict(
        CDI_records = data_frame_of_CDI_records,
        co_dependency_statistics = data_frame_of_genes_and_statistics,
        significant_co_dependency_partners = data_frame_of_significant_partners,
        module_score_table = module_score_table,
        numbers_of_cells_by_sample_and_subtype = data_frame_of_numbers_of_cells_by_sample_and_subtype,
        pathway_correlations = data_frame_of_correlations,
        pathway_statistics = data_frame_of_pathways_and_statistics,
        stage_comparisons = data_frame_of_stage_comparisons,
        subtype_comparisons = data_frame_of_subtype_comparisons,
        failures = data_frame_of_failures,
        summary = data_frame_of_summary
    )


def create_plots(
    paths: Paths,
    configuration: Configuration,
    data_frame_of_genes_and_statistics: pd.DataFrame,
    data_frame_of_pathways_and_statistics: pd.DataFrame,
    module_score_table: pd.DataFrame,
    dictionary_of_genes_and_data_frames_of_metrics: dict
):
    for reference_gene in configuration.list_of_reference_genes:
        data_frame_for_reference_gene = data_frame_of_genes_and_statistics[
            data_frame_of_genes_and_statistics["reference_gene"] == reference_gene
        ]
        if not data_frame_for_reference_gene.empty:
            create_rank_plot(data_frame_for_reference_gene, reference_gene, paths.plots / f"rank_plot_of_{reference_gene}.png")
            create_volcano_plot(
                data_frame_for_reference_gene,
                reference_gene,
                paths.plots / f"volcano_plot_of_{reference_gene}.png",
                configuration.significance_level
            )
        data_frame_of_pathways_for_reference_gene = data_frame_of_pathways_and_statistics[
            data_frame_of_pathways_and_statistics["reference_gene"] == reference_gene
        ]
        if data_frame_of_pathways_for_reference_gene["mean_correlation"].notna().any():
            create_bar_plot_of_pathway_correlations(
                data_frame_of_pathways_for_reference_gene,
                reference_gene,
                paths.plots / f"bar_plot_of_pathway_correlations_of_{reference_gene}.png"
            )

    name_of_column_of_values = f"standardized_{configuration.metric}"
    for gene, (data_frame_of_samples_and_metrics, data_frame_of_samples_subtypes_and_metrics) in (
        dictionary_of_genes_and_data_frames_of_metrics.items()
    ):
        for data_frame, name_of_column_of_groups, list_of_groups in [
            (data_frame_of_samples_and_metrics, "stage", list(configuration.dictionary_of_stage_codes_and_stages.values())),
            (data_frame_of_samples_subtypes_and_metrics, "subtype", LIST_OF_SUBTYPES)
        ]:
            data_frame = standardize_within_study(data_frame, configuration.metric)
            if data_frame[name_of_column_of_values].notna().any():
                create_box_plots_by_study(
                    data_frame,
                    name_of_column_of_values,
                    name_of_column_of_groups,
                    list_of_groups,
                    f"{configuration.metric.replace('_', ' ')} of {gene} by {name_of_column_of_groups}",
                    paths.plots / f"box_plots_of_{configuration.metric}_of_{gene}_by_{name_of_column_of_groups}.png"
                )
        for method in configuration.list_of_stemness_methods:
            name_of_column_of_stemness = f"stemness_{method}"
            if (
                name_of_column_of_stemness in module_score_table.columns and
                gene in module_score_table.columns and
                (module_score_table[name_of_column_of_stemness].notna() & module_score_table[gene].notna()).any()
            ):
                create_scatter_plot_of_stemness_vs_expression(
                    module_score_table,
                    gene,
                    name_of_column_of_stemness,
                    paths.plots / f"scatter_plot_of_{gene}_vs_{name_of_column_of_stemness}.png"
                )


def main():
    logging.basicConfig(
        level = logging.INFO,
        format = "%(asctime)s – %(levelname)s – %(message)s"
    )

    parser = argparse.ArgumentParser(description = "Compute co-expression and pathway correlation statistics of FEN1 across samples.")
    parser.add_argument("--root", required = True, help = "Directory containing `samples.h5ad` and `gene_sets`.")
    parser.add_argument("--configuration", default = None, help = "JSON file of parameters of the analysis.")
    parser.add_argument("--reference-gene", dest = "list_of_reference_genes", nargs = "+", default = None, help = "Reference genes.")
    parser.add_argument("--minimum-number-of-samples", type = int, default = None, help = "Minimum number of samples in which a gene must be tested.")
    parser.add_argument("--seed", type = int, default = None, help = "Seed of random numbers for module scores and breaking ties of ranks.")
    parser.add_argument("--skip-plots", action = "store_true", help = "Do not create plots.")
    args = parser.parse_args()

    paths = Paths(args.root)
    configuration = (
        Configuration.from_JSON(args.configuration, paths)
        if args.configuration is not None
        else Configuration()
    )
    if args.list_of_reference_genes is not None:
        configuration.list_of_reference_genes = [gene.upper() for gene in args.list_of_reference_genes]
    if args.minimum_number_of_samples is not None:
        configuration.minimum_number_of_samples = args.minimum_number_of_samples
    if args.seed is not None:
        configuration.seed = args.seed

    run_analysis(paths, configuration, plots_will_be_created = not args.skip_plots)


if __name__ == "__main__":
    main()
