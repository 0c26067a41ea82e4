'''
Usage
pytest -q testing/test_run_analysis.py

Verify that the pipeline runs from a collection of samples and catalogs of gene sets to tables and plots.
'''

import anndata as ad
import numpy as np
import pandas as pd
import pytest

from FEN1_analysis.config import Configuration, Paths
from FEN1_analysis.plot import (
    create_bar_plot_of_pathway_correlations,
    create_rank_plot,
    create_volcano_plot
)
from FEN1_analysis.run_analysis import run_analysis


LIST_OF_SAMPLE_IDS = ["Wang_GBM1P", "Wang_GBM2R", "Neftel_GBM3P", "Neftel_GBM4R"]
LIST_OF_GENES = ["FEN1", "GFAP", "OLIG1", "CHI3L1", "VIM", "SOX11", "DCX", "MKI67", "PCNA"]
NUMBER_OF_CELLS_PER_SAMPLE = 20


@pytest.fixture
def paths(tmp_path) -> Paths:
    paths = Paths(tmp_path)
    paths.gene_sets.mkdir()
    pd.DataFrame(
        {
            "AC": ["GFAP", None],
            "OPC": ["OLIG1", None],
            "MES1": ["CHI3L1", None],
            "MES2": ["VIM", "CHI3L1"],
            "NPC1": ["SOX11", None],
            "NPC2": ["DCX", "SOX11"],
            "G2/M": ["MKI67", None]
        }
    ).to_csv(paths.subtype_programs, index = False)

    random_number_generator = np.random.default_rng(11)
    number_of_cells = len(LIST_OF_SAMPLE_IDS) * NUMBER_OF_CELLS_PER_SAMPLE
    ad.AnnData(
        X = random_number_generator.poisson(2.0, size = (number_of_cells, len(LIST_OF_GENES))).astype(float),
        obs = pd.DataFrame(
            {"sample_id": np.repeat(LIST_OF_SAMPLE_IDS, NUMBER_OF_CELLS_PER_SAMPLE)},
            index = [f"cell_{i}" for i in range(number_of_cells)]
        ),
        var = pd.DataFrame(index = LIST_OF_GENES)
    ).write_h5ad(paths.samples)
    return paths


def test_that_pipeline_creates_tables_and_plots(paths, fake_engine):
    configuration = Configuration(minimum_number_of_samples = 1, list_of_stemness_methods = ["gene_counts"])
    dictionary_of_results = run_analysis(paths, configuration, engine = fake_engine)

    for path in [
        paths.CDI_records,
        paths.co_dependency_statistics,
        paths.significant_co_dependency_partners,
        paths.module_score_table,
        paths.numbers_of_cells_by_sample_and_subtype,
        paths.pathway_correlations,
        paths.pathway_statistics,
        paths.stage_comparisons,
        paths.subtype_comparisons,
        paths.failures,
        paths.summary
    ]:
        assert path.exists()
    assert (paths.plots / "rank_plot_of_FEN1.png").exists()

    dictionary_of_quantities_and_values = dict(
        dictionary_of_results["summary"].itertuples(index = False)
    )
    assert dictionary_of_quantities_and_values["number_of_samples_loaded"] == 4
    assert dictionary_of_quantities_and_values["number_of_samples_of_study_Wang"] == 2
    assert dictionary_of_quantities_and_values["number_of_samples_of_study_Abdelfattah"] == 0
    assert dictionary_of_quantities_and_values["number_of_gene_sets"] == 6
    assert dictionary_of_quantities_and_values["number_of_failed_sub_analyses"] == 0

    module_score_table = dictionary_of_results["module_score_table"]
    assert len(module_score_table) == len(LIST_OF_SAMPLE_IDS) * NUMBER_OF_CELLS_PER_SAMPLE
    assert set(module_score_table["subtype"]) <= {"AC", "OPC", "MES", "NPC"}
    assert "G2/M_Neftel" not in module_score_table.columns

    assert set(dictionary_of_results["pathway_statistics"]["pathway"]) == {
        "AC_Neftel", "OPC_Neftel", "MES1_Neftel", "MES2_Neftel", "NPC1_Neftel", "NPC2_Neftel"
    }
    assert set(dictionary_of_results["co_dependency_statistics"]["target_gene"]) <= set(LIST_OF_GENES) - {"FEN1"}

    # Each study has 2 samples, which are too few to test.
    data_frame_of_stage_comparisons = dictionary_of_results["stage_comparisons"].set_index("study")
    assert data_frame_of_stage_comparisons.at["Wang", "status"].startswith("unavailable")
    assert data_frame_of_stage_comparisons.at["pooled", "number_of_usable_rows"] == 4


def test_that_samples_without_reference_gene_yield_empty_tables(paths, fake_engine):
    list_of_genes_without_FEN1 = [gene for gene in LIST_OF_GENES if gene != "FEN1"]
    random_number_generator = np.random.default_rng(12)
    number_of_cells = len(LIST_OF_SAMPLE_IDS) * NUMBER_OF_CELLS_PER_SAMPLE
    ad.AnnData(
        X = random_number_generator.poisson(2.0, size = (number_of_cells, len(list_of_genes_without_FEN1))).astype(float),
        obs = pd.DataFrame(
            {"sample_id": np.repeat(LIST_OF_SAMPLE_IDS, NUMBER_OF_CELLS_PER_SAMPLE)},
            index = [f"cell_{i}" for i in range(number_of_cells)]
        ),
        var = pd.DataFrame(index = list_of_genes_without_FEN1)
    ).write_h5ad(paths.samples)

    configuration = Configuration(minimum_number_of_samples = 1, list_of_stemness_methods = ["gene_counts"])
    dictionary_of_results = run_analysis(paths, configuration, engine = fake_engine)

    for path in [
        paths.CDI_records,
        paths.co_dependency_statistics,
        paths.significant_co_dependency_partners,
        paths.module_score_table,
        paths.pathway_correlations,
        paths.pathway_statistics,
        paths.stage_comparisons,
        paths.subtype_comparisons,
        paths.failures,
        paths.summary
    ]:
        assert path.exists()
    assert dictionary_of_results["CDI_records"].empty
    assert dictionary_of_results["co_dependency_statistics"].empty
    assert dictionary_of_results["significant_co_dependency_partners"].empty
    assert dictionary_of_results["pathway_correlations"].empty
    assert not (paths.plots / "rank_plot_of_FEN1.png").exists()

    # Module scores of every sample are kept although expressions of FEN1 are missing.
    module_score_table = dictionary_of_results["module_score_table"]
    assert module_score_table["sample_ID"].nunique() == len(LIST_OF_SAMPLE_IDS)
    assert module_score_table["FEN1"].isna().all()

    assert dictionary_of_results["stage_comparisons"]["status"].str.startswith("unavailable").all()

    dictionary_of_quantities_and_values = dict(
        dictionary_of_results["summary"].itertuples(index = False)
    )
    assert dictionary_of_quantities_and_values["number_of_samples_loaded"] == 4
    assert dictionary_of_quantities_and_values["number_of_samples_with_CDI_records"] == 0
    assert dictionary_of_quantities_and_values["number_of_target_genes_aggregated"] == 0
    assert dictionary_of_quantities_and_values["number_of_samples_with_module_scores"] == 4


def test_that_missing_required_catalog_ends_run(paths, fake_engine):
    paths.subtype_programs.unlink()
    with pytest.raises(FileNotFoundError):
        run_analysis(paths, Configuration(), engine = fake_engine, plots_will_be_created = False)


def test_that_plots_are_created(tmp_path):
    data_frame_of_genes_and_statistics = pd.DataFrame(
        {
            "reference_gene": "FEN1",
            "target_gene": ["PCNA", "LIG1", "POLB", "GFAP"],
            "mean_NCDI": [0.6, 0.4, -0.1, -0.5],
            "FDR": [1e-6, 0.01, 0.5, 0.0],
            "significant": [True, True, False, False],
            "rank": [1, 2, 3, 4]
        }
    )
    data_frame_of_pathways_and_statistics = pd.DataFrame(
        {
            "pathway": ["E2F_TARGETS_Hallmark", "BER_DNA_repair"],
            "mean_correlation": [0.3, -0.1],
            "significant": [True, False]
        }
    )
    create_rank_plot(data_frame_of_genes_and_statistics, "FEN1", tmp_path / "rank.png")
    create_volcano_plot(data_frame_of_genes_and_statistics, "FEN1", tmp_path / "volcano.png")
    create_bar_plot_of_pathway_correlations(data_frame_of_pathways_and_statistics, "FEN1", tmp_path / "bar.png")
    for name in ["rank.png", "volcano.png", "bar.png"]:
        assert (tmp_path / name).exists()
