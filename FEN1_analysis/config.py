from pathlib import Path
import inspect
import json
import os


LIST_OF_REFERENCE_GENES = ["FEN1"]

# Substrings of sample IDs that identify the 3 studies whose samples are pooled.
LIST_OF_STUDY_SUBSTRINGS = ["Abdelfattah", "Wang", "Neftel"]

# A sample ID like "Wang_GBM12P" has study "Wang" and stage code "P".
PATTERN_OF_STAGE_SUFFIX = r"_(?:GBM|P|Patient)?\d+(?P<stage>[PR])$"

DICTIONARY_OF_STAGE_CODES_AND_STAGES = {
    "P": "Primary",
    "R": "Recurrent"
}

DICTIONARY_OF_SUBTYPES_AND_PROGRAMS = {
    "AC": ["AC_Neftel"],
    "OPC": ["OPC_Neftel"],
    "MES": ["MES1_Neftel", "MES2_Neftel"],
    "NPC": ["NPC1_Neftel", "NPC2_Neftel"]
}


class GeneSetSource():
    '''
    Class GeneSetSource describes one catalog of gene sets in a wide table
    whose columns are names of gene sets and whose values are gene symbols.
    '''

    def __init__(
        self,
        name_of_catalog: str,
        path: Path,
        sheet = None,
        exclusion_pattern: str | None = None,
        is_optional: bool = True
    ):
        self.name_of_catalog = name_of_catalog
        self.path = Path(path)
        self.sheet = sheet
        self.exclusion_pattern = exclusion_pattern
        self.is_optional = is_optional


    def __repr__(self):
        return f"GeneSetSource({self.name_of_catalog!r}, {str(self.path)!r})"


class Paths():
    '''
    Class Paths records dependencies and outputs of and ensures dependencies exist for
    `FEN1_analysis/run_analysis.py`.
    One object of class Paths is created per run and passed to the stages that read or write files.
    '''

    def __init__(self, root):

        # dependencies
        self.root = Path(root)
        self.gene_sets = self.root / "gene_sets"
        self.samples = self.root / "samples.h5ad"
        # -----
        self.subtype_programs = self.gene_sets / "Neftel_subtype_programs.csv"
        self.hallmark_gene_sets = self.gene_sets / "MSigDB_Hallmark.csv"
        self.DNA_repair_gene_sets = self.gene_sets / "DNA_repair_gene_sets.xlsx"

        # outputs
        self.output = self.root / "output"
        self.tables = self.output / "tables"
        self.plots = self.output / "plots"
        # -----
        self.CDI_records = self.tables / "CDI_records.csv"
        self.co_dependency_statistics = self.tables / "co_dependency_statistics.csv"
        self.significant_co_dependency_partners = self.tables / "significant_co_dependency_partners.csv"
        self.module_score_table = self.tables / "module_score_table.csv"
        self.numbers_of_cells_by_sample_and_subtype = self.tables / "numbers_of_cells_by_sample_and_subtype.csv"
        self.pathway_correlations = self.tables / "pathway_correlations.csv"
        self.pathway_statistics = self.tables / "pathway_statistics.csv"
        self.stage_comparisons = self.tables / "stage_comparisons.csv"
        self.subtype_comparisons = self.tables / "subtype_comparisons.csv"
        self.failures = self.tables / "failures.csv"
        self.summary = self.tables / "summary.csv"
        # Plots with names of the form {kind}_of_{gene}.png are created dynamically.


    def ensure_dependencies_for_analysis_exist(self):
        for path in [self.output, self.tables, self.plots]:
            os.makedirs(path, exist_ok = True)
        if not self.samples.exists():
            raise FileNotFoundError(f"The dependency of `FEN1_analysis/run_analysis.py` `{self.samples}` does not exist.")


    def create_list_of_default_gene_set_sources(self) -> list[GeneSetSource]:
        return [
            # Cell cycle states G1/S and G2/M are not subtype programs.
            GeneSetSource("Neftel", self.subtype_programs, exclusion_pattern = r"^G1/S|^G2/M", is_optional = False),
            GeneSetSource("Hallmark", self.hallmark_gene_sets),
            GeneSetSource("DNA_repair", self.DNA_repair_gene_sets, sheet = 0)
        ]


class Configuration():
    '''
    Class Configuration holds every setting of one run.
    An object of class Configuration is created once by `main` and passed into each stage.
    '''

    def __init__(
        self,
        list_of_reference_genes: list[str] | None = None,
        list_of_gene_set_sources: list[GeneSetSource] | None = None,
        name_of_column_of_sample_IDs: str = "sample_id",
        layer: str | None = None,
        list_of_study_substrings: list[str] | None = None,
        pattern_of_stage_suffix: str = PATTERN_OF_STAGE_SUFFIX,
        dictionary_of_stage_codes_and_stages: dict[str, str] | None = None,
        dictionary_of_subtypes_and_programs: dict[str, list[str]] | None = None,
        minimum_number_of_samples: int = 30,
        threshold_of_FDR_per_sample: float = 0.05,
        significance_level: float = 0.05,
        minimum_fraction_of_significant_samples: float = 0.5,
        minimum_number_of_usable_rows: int = 5,
        minimum_number_of_complete_cells: int = 3,
        list_of_stemness_methods: list[str] | None = None,
        metric: str = "mean_of_log1p_expression",
        seed: int | None = 0
    ):
        self.list_of_reference_genes = [
            gene.upper() for gene in (list_of_reference_genes or LIST_OF_REFERENCE_GENES)
        ]
        self.list_of_gene_set_sources = list_of_gene_set_sources or []
        self.name_of_column_of_sample_IDs = name_of_column_of_sample_IDs
        self.layer = layer
        self.list_of_study_substrings = list_of_study_substrings or list(LIST_OF_STUDY_SUBSTRINGS)
        self.pattern_of_stage_suffix = pattern_of_stage_suffix
        self.dictionary_of_stage_codes_and_stages = (
            dictionary_of_stage_codes_and_stages or dict(DICTIONARY_OF_STAGE_CODES_AND_STAGES)
        )
        self.dictionary_of_subtypes_and_programs = (
            dictionary_of_subtypes_and_programs or dict(DICTIONARY_OF_SUBTYPES_AND_PROGRAMS)
        )
        self.minimum_number_of_samples = minimum_number_of_samples
        self.threshold_of_FDR_per_sample = threshold_of_FDR_per_sample
        self.significance_level = significance_level
        self.minimum_fraction_of_significant_samples = minimum_fraction_of_significant_samples
        self.minimum_number_of_usable_rows = minimum_number_of_usable_rows
        self.minimum_number_of_complete_cells = minimum_number_of_complete_cells
        self.list_of_stemness_methods = list_of_stemness_methods or ["gene_counts", "entropy"]
        self.metric = metric
        self.seed = seed


    @property
    def list_of_target_genes(self) -> list[str]:
        return list(self.list_of_reference_genes)


    @classmethod
    def from_JSON(cls, path, paths: Paths | None = None) -> "Configuration":
        '''
        Create a configuration from a JSON object whose keys are names of parameters of `Configuration`.
        Key `gene_set_sources` holds a list of objects with keys
        `name_of_catalog`, `path`, `sheet`, `exclusion_pattern`, and `is_optional`.
        Relative paths of gene set sources are resolved against the root of `paths`.
        '''
        dictionary_of_parameters = json.loads(Path(path).read_text(encoding = "utf-8"))
        list_of_dictionaries_of_sources = dictionary_of_parameters.pop("gene_set_sources", None)
        # Sources are given as objects under `gene_set_sources` and converted below.
        set_of_valid_keys = set(inspect.signature(cls).parameters) - {"list_of_gene_set_sources"}
        set_of_unknown_keys = set(dictionary_of_parameters) - set_of_valid_keys
        if set_of_unknown_keys:
            raise ValueError(f"Configuration {path} has unknown keys {sorted(set_of_unknown_keys)}.")
        if list_of_dictionaries_of_sources is not None:
            list_of_gene_set_sources = []
            for dictionary_of_source in list_of_dictionaries_of_sources:
                path_of_source = Path(dictionary_of_source["path"])
                if not path_of_source.is_absolute() and paths is not None:
                    path_of_source = paths.root / path_of_source
                list_of_gene_set_sources.append(
                    GeneSetSource(
                        name_of_catalog = dictionary_of_source["name_of_catalog"],
                        path = path_of_source,
                        sheet = dictionary_of_source.get("sheet"),
                        exclusion_pattern = dictionary_of_source.get("exclusion_pattern"),
                        is_optional = dictionary_of_source.get("is_optional", True)
                    )
                )
            dictionary_of_parameters["list_of_gene_set_sources"] = list_of_gene_set_sources
        return cls(**dictionary_of_parameters)
