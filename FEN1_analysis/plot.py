from pathlib import Path
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns


def create_rank_plot(
    data_frame_of_genes_and_statistics: pd.DataFrame,
    reference_gene: str,
    path_of_plot: Path,
    number_of_labels: int = 10
):
    '''
    Plot mean NCDI vs. rank of target genes and label the top significant co-dependency partners.
    '''
    data_frame = data_frame_of_genes_and_statistics.sort_values("rank")
    plt.figure(figsize = (6, 4))
    ax = sns.scatterplot(
        data = data_frame,
        x = "rank",
        y = "mean_NCDI",
        hue = "significant",
        palette = {True: "#d62728", False: "#7f7f7f"},
        s = 8,
        linewidth = 0
    )
    ax.axhline(0, lw = 1, c = "black")
    for _, row in data_frame[data_frame["significant"]].head(number_of_labels).iterrows():
        ax.text(row["rank"], row["mean_NCDI"], row["target_gene"], fontsize = 7)
    ax.set_xlabel("rank")
    ax.set_ylabel("mean NCDI")
    ax.set_title(f"Co-dependency of genes with {reference_gene}")
    ax.legend(title = "significant partner")
    plt.tight_layout()
    Path(path_of_plot).parent.mkdir(parents = True, exist_ok = True)
    plt.savefig(path_of_plot)
    plt.close()


def create_volcano_plot(
    data_frame_of_genes_and_statistics: pd.DataFrame,
    reference_gene: str,
    path_of_plot: Path,
    significance_level: float = 0.05
):
    data_frame = data_frame_of_genes_and_statistics.copy()
    smallest_positive_FDR = data_frame.loc[data_frame["FDR"] > 0, "FDR"].min()
    floor = smallest_positive_FDR if pd.notna(smallest_positive_FDR) else np.finfo(float).tiny
    data_frame["negative_log_base_10_of_FDR"] = -np.log10(data_frame["FDR"].clip(lower = floor))
    plt.figure(figsize = (6, 5))
    ax = sns.scatterplot(
        data = data_frame,
        x = "mean_NCDI",
        y = "negative_log_base_10_of_FDR",
        hue = "significant",
        palette = {True: "#d62728", False: "#7f7f7f"},
        s = 10,
        linewidth = 0
    )
    ax.axhline(-np.log10(significance_level), lw = 1, c = "black")
    ax.axvline(0, lw = 1, c = "black")
    series_of_scores = data_frame["negative_log_base_10_of_FDR"] * data_frame["mean_NCDI"].abs()
    number_of_labels = 5
    for index in series_of_scores.nlargest(number_of_labels).index:
        ax.text(
            data_frame.at[index, "mean_NCDI"],
            data_frame.at[index, "negative_log_base_10_of_FDR"],
            data_frame.at[index, "target_gene"],
            fontsize = 7
        )
    ax.set_xlabel("mean NCDI")
    ax.set_ylabel("-log_10(FDR)")
    ax.set_title(f"Co-dependency of genes with {reference_gene} across samples")
    ax.legend(title = "significant partner")
    plt.tight_layout()
    Path(path_of_plot).parent.mkdir(parents = True, exist_ok = True)
    plt.savefig(path_of_plot)
    plt.close()


def create_bar_plot_of_pathway_correlations(
    data_frame_of_pathways_and_statistics: pd.DataFrame,
    reference_gene: str,
    path_of_plot: Path,
    number_of_pathways: int = 30
):
    data_frame = (
        data_frame_of_pathways_and_statistics
        .dropna(subset = ["mean_correlation"])
        .head(number_of_pathways)
        .sort_values("mean_correlation")
    )
    plt.figure(figsize = (7, max(3, 0.25 * len(data_frame) + 1)))
    ax = sns.barplot(
        data = data_frame,
        x = "mean_correlation",
        y = "pathway",
        hue = "significant",
        palette = {True: "#d62728", False: "#7f7f7f"},
        dodge = False
    )
    ax.axvline(0, lw = 1, c = "black")
    ax.set_xlabel(f"mean Spearman correlation with {reference_gene}")
    ax.set_ylabel("")
    ax.set_title(f"Correlations of module scores with expression of {reference_gene}")
    plt.tight_layout()
    Path(path_of_plot).parent.mkdir(parents = True, exist_ok = True)
    plt.savefig(path_of_plot)
    plt.close()


def create_box_plots_by_study(
    data_frame: pd.DataFrame,
    name_of_column_of_values: str,
    name_of_column_of_groups: str,
    list_of_groups: list[str],
    title: str,
    path_of_plot: Path
):
    '''
    Plot box plots with overlaid points of values by group, with one panel per study.
    '''
    data_frame = data_frame.dropna(subset = [name_of_column_of_values, name_of_column_of_groups])
    facet_grid = sns.catplot(
        data = data_frame,
        x = name_of_column_of_groups,
        y = name_of_column_of_values,
        col = "study",
        kind = "box",
        order = list_of_groups,
        color = "white",
        sharey = True,
        height = 3.5,
        aspect = 0.8
    )
    facet_grid.map_dataframe(
        sns.stripplot,
        x = name_of_column_of_groups,
        y = name_of_column_of_values,
        order = list_of_groups,
        color = "black",
        size = 3,
        jitter = 0.2
    )
    facet_grid.set_axis_labels("", name_of_column_of_values.replace('_', ' '))
    facet_grid.figure.suptitle(title)
    facet_grid.figure.tight_layout()
    Path(path_of_plot).parent.mkdir(parents = True, exist_ok = True)
    facet_grid.figure.savefig(path_of_plot)
    plt.close(facet_grid.figure)


def create_scatter_plot_of_stemness_vs_expression(
    module_score_table: pd.DataFrame,
    gene: str,
    name_of_column_of_stemness: str,
    path_of_plot: Path
):
    data_frame = module_score_table.dropna(subset = [gene, name_of_column_of_stemness])
    plt.figure(figsize = (5, 4))
    ax = sns.scatterplot(
        data = data_frame,
        x = name_of_column_of_stemness,
        y = gene,
        hue = "subtype" if "subtype" in data_frame.columns else None,
        s = 5,
        linewidth = 0
    )
    ax.set_xlabel(name_of_column_of_stemness.replace('_', ' '))
    ax.set_ylabel(f"expression of {gene}")
    ax.set_title(f"Expression of {gene} vs. {name_of_column_of_stemness.replace('_', ' ')}")
    plt.tight_layout()
    Path(path_of_plot).parent.mkdir(parents = True, exist_ok = True)
    plt.savefig(path_of_plot)
    plt.close()
