'''
Load a collection of samples of single-cell expression and group samples by study.

A collection is either one `.h5ad` file whose cells are labeled with sample IDs in a column of `obs`
or a directory of `.h5ad` files, one per sample, whose stems are sample IDs.
'''

from pathlib import Path
import anndata as ad
import logging


logger = logging.getLogger(__name__)


def load_samples(path, name_of_column_of_sample_IDs: str = "sample_id") -> dict[str, ad.AnnData]:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Collection of samples {path} does not exist.")

    dictionary_of_sample_IDs_and_samples = {}
    if path.is_dir():
        list_of_paths_of_samples = sorted(path.glob("*.h5ad"))
        logger.info(f"{len(list_of_paths_of_samples)} files of samples were found in {path}.")
        for path_of_sample in list_of_paths_of_samples:
            dictionary_of_sample_IDs_and_samples[path_of_sample.stem] = ad.read_h5ad(path_of_sample)
    else:
        collection = ad.read_h5ad(path)
        if name_of_column_of_sample_IDs not in collection.obs.columns:
            raise KeyError(
                f"Collection of samples {path} has no column {name_of_column_of_sample_IDs} of sample IDs in `obs`."
            )
        series_of_sample_IDs = collection.obs[name_of_column_of_sample_IDs].astype(str)
        for sample_ID in sorted(series_of_sample_IDs.unique()):
            dictionary_of_sample_IDs_and_samples[sample_ID] = collection[(series_of_sample_IDs == sample_ID).to_numpy()].copy()

    if not dictionary_of_sample_IDs_and_samples:
        raise ValueError(f"Collection of samples {path} contains no samples.")
    logger.info(f"{len(dictionary_of_sample_IDs_and_samples)} samples were loaded.")
    return dictionary_of_sample_IDs_and_samples


def group_samples_by_study(
    dictionary_of_sample_IDs_and_samples: dict,
    list_of_study_substrings: list[str]
) -> dict[str, dict]:
    '''
    Provide a dictionary of substrings and dictionaries of sample IDs containing those substrings and samples.
    Groups may overlap. A sample whose ID contains no substring belongs to no group.
    '''
    dictionary_of_studies_and_samples = {
        study_substring: {
            sample_ID: sample
            for sample_ID, sample in dictionary_of_sample_IDs_and_samples.items()
            if study_substring in sample_ID
        }
        for study_substring in list_of_study_substrings
    }
    for study_substring, dictionary_of_samples in dictionary_of_studies_and_samples.items():
        logger.info(f"{len(dictionary_of_samples)} samples belong to study {study_substring}.")
    return dictionary_of_studies_and_samples
