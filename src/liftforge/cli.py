"""Command-line interface for LiftForge.

This module provides the main entry point for the liftforge CLI tool.
It uses Click to define commands and subcommands.

Commands:
    project: Project reference genes onto a target genome with CESAR2.0
    retry: Re-run genes that exceeded the aligner memory limit
    config: Write the default configuration as YAML

Example:
    $ liftforge --help
    $ liftforge project --reference ref.fa --target tgt.fa --annotation ref.gff3 \\
        --alignment ref_vs_tgt.maf -o projected.gff3 --retry-file himem.jsonl
    $ liftforge retry --reference ref.fa --target tgt.fa --annotation ref.gff3 \\
        --alignment ref_vs_tgt.maf --retry-file himem.jsonl -o projected_himem.gff3
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import click
from rich.console import Console

from liftforge import __version__

# Initialize rich console for pretty output
console = Console()


@click.group()
@click.version_option(version=__version__, prog_name="liftforge")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output.")
@click.option("-q", "--quiet", is_flag=True, help="Suppress non-error output.")
@click.option(
    "--log-file",
    type=click.Path(path_type=Path),
    help="Also write debug logs to this file.",
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, quiet: bool, log_file: Optional[Path]) -> None:
    """LiftForge: project protein-coding transcripts across genomes.

    LiftForge selects the best-supported target region from a pairwise
    whole-genome alignment, aligns each transcript with the codon-aware
    CESAR2.0 aligner and writes the projected gene models as GFF3.
    """
    from liftforge.utils.logging import setup_logging

    # Ensure context object exists
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet

    verbosity = 0 if quiet else (2 if verbose else 1)
    setup_logging(verbosity=verbosity, log_file=log_file)


# =============================================================================
# Shared options
# =============================================================================


def input_options(func):
    """Input file and projection options shared by project and retry."""
    options = [
        click.option(
            "--reference",
            "-r",
            type=click.Path(exists=True, path_type=Path),
            required=True,
            help="Reference genome FASTA file.",
        ),
        click.option(
            "--target",
            "-t",
            type=click.Path(exists=True, path_type=Path),
            required=True,
            help="Target genome FASTA file.",
        ),
        click.option(
            "--annotation",
            "-a",
            type=click.Path(exists=True, path_type=Path),
            required=True,
            help="Reference annotation GFF3 file.",
        ),
        click.option(
            "--alignment",
            "-m",
            type=click.Path(exists=True, path_type=Path),
            required=True,
            help="Reference-vs-target whole-genome alignment (MAF).",
        ),
        click.option(
            "--reference-assembly",
            default="",
            help="Reference assembly name used as MAF sequence prefix.",
        ),
        click.option(
            "--target-assembly",
            default="",
            help="Target assembly name used as MAF sequence prefix.",
        ),
        click.option(
            "--config",
            "-c",
            "config_path",
            type=click.Path(exists=True, path_type=Path),
            help="YAML configuration file.",
        ),
        click.option(
            "-o",
            "--output",
            type=click.Path(path_type=Path),
            required=True,
            help="Output GFF3 file of projected genes.",
        ),
        click.option(
            "--cesar-path",
            type=click.Path(file_okay=False, path_type=Path),
            help="Directory containing the cesar binary.",
        ),
        click.option(
            "--clade",
            type=str,
            help="CESAR clade parameter.",
        ),
        click.option(
            "--scratch-dir",
            type=click.Path(file_okay=False, path_type=Path),
            help="Directory for per-transcript scratch files.",
        ),
        click.option(
            "--canonical/--all-transcripts",
            default=None,
            help="Project only the canonical transcript of each gene.",
        ),
        click.option(
            "--common-slice/--no-common-slice",
            default=None,
            help="Place all transcripts of a gene on one shared target region.",
        ),
        click.option(
            "--filter/--no-filter",
            "use_filter",
            default=None,
            help="Drop projected transcripts below the coverage and identity thresholds.",
        ),
        click.option(
            "--workers",
            "-j",
            type=int,
            default=1,
            show_default=True,
            help="Number of parallel worker processes (0 = auto).",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _build_config(
    config_path: Optional[Path],
    cesar_path: Optional[Path],
    clade: Optional[str],
    scratch_dir: Optional[Path],
    canonical: Optional[bool],
    common_slice: Optional[bool],
    use_filter: Optional[bool],
    padding: Optional[int] = None,
    max_memory: Optional[float] = None,
):
    """Load configuration and apply environment and command-line overrides."""
    from liftforge.config import COVERAGE_IDENTITY_FILTER, Config

    config = Config.load(config_path).apply_env()
    projection = config.projection
    if cesar_path is not None:
        projection.cesar_path = str(cesar_path)
    if clade is not None:
        projection.clade = clade
    if scratch_dir is not None:
        projection.scratch_dir = str(scratch_dir)
    if canonical is not None:
        projection.canonical = canonical
    if common_slice is not None:
        projection.common_slice = common_slice
    if padding is not None:
        projection.padding = padding
    if max_memory is not None:
        projection.max_memory_gb = max_memory
    if use_filter is not None:
        config.filter.kind = (config.filter.kind or COVERAGE_IDENTITY_FILTER) if use_filter else None
    config.validate()
    return config


def _read_gene_list(path: Path) -> list[str]:
    """Read gene IDs from a file (one per line, # comments allowed)."""
    with open(path) as f:
        return [line.strip() for line in f if line.strip() and not line.startswith("#")]


def _run_projection(
    ctx: click.Context,
    inputs,
    gene_ids: list[str],
    output: Path,
    workers: int,
    retry_file: Optional[Path],
    max_memory_gb: Optional[float],
    himem_lane: bool,
) -> None:
    """Run the executor, write output genes and report the run."""
    from liftforge.homology.cesar import CesarRunner
    from liftforge.io.gff import GFF3Writer
    from liftforge.parallel.executor import (
        GeneExecutor,
        create_progress_bar,
        get_optimal_workers,
    )

    quiet = ctx.obj.get("quiet", False)
    projection = inputs.config.projection

    CesarRunner(cesar_path=projection.cesar_path).check_available()
    Path(projection.scratch_dir).mkdir(parents=True, exist_ok=True)

    n_workers = get_optimal_workers() if workers == 0 else workers

    if not quiet:
        console.print(f"[blue]Reference:[/blue] {inputs.reference_fasta}")
        console.print(f"[blue]Target:[/blue] {inputs.target_fasta}")
        console.print(f"[blue]Annotation:[/blue] {inputs.annotation_gff}")
        console.print(f"[blue]Alignment:[/blue] {inputs.alignment_maf}")
        console.print(f"[blue]Genes:[/blue] {len(gene_ids):,}")
        console.print(f"[blue]Workers:[/blue] {n_workers}")
        console.print(f"[blue]Output:[/blue] {output}")

    progress = None if quiet else create_progress_bar()
    task_id = None

    def on_progress(completed: int, total: int, gene_id: str) -> None:
        if progress is not None:
            progress.update(task_id, completed=completed, description=f"Projecting {gene_id}")

    with GFF3Writer(output) as writer, GeneExecutor(
        inputs, n_workers=n_workers, progress_callback=on_progress
    ) as executor:
        writer.write_header(target_genome=inputs.target_fasta, liftforge_version=__version__)
        if progress is not None:
            with progress:
                task_id = progress.add_task("Projecting genes", total=len(gene_ids))
                report = executor.project(
                    gene_ids, writer, max_memory_gb=max_memory_gb, himem_lane=himem_lane
                )
        else:
            report = executor.project(
                gene_ids, writer, max_memory_gb=max_memory_gb, himem_lane=himem_lane
            )

    if report.retries:
        if retry_file is None:
            console.print(
                f"[yellow]Warning:[/yellow] {len(report.retries)} genes need a high-memory "
                f"run; use --retry-file to record them"
            )
        else:
            with open(retry_file, "w") as f:
                for request in report.retries:
                    f.write(request.to_json() + "\n")

    if not quiet:
        stats = report.stats
        console.print("")
        console.print("[bold]Projection Summary:[/bold]")
        console.print(f"  Genes processed:     {stats.total_tasks:,}")
        console.print(f"  Completed:           {stats.successful:,}")
        console.print(f"  Failed:              {stats.failed:,}")
        console.print(f"  High-memory retries: {len(report.retries):,}")
        console.print(f"  Output genes:        {report.genes_stored:,}")
        console.print(f"  Duration:            {stats.total_duration:.1f}s")
        if report.himem_stats is not None:
            console.print(f"  High-memory lane:    {report.himem_stats.successful:,} completed")
        console.print("")
        console.print(f"[green]Wrote projected GFF:[/green] {output}")
        if report.retries and retry_file is not None:
            console.print(f"[green]Wrote retry requests:[/green] {retry_file}")

    for failure in report.failures:
        console.print(f"[red]Failed:[/red] {failure.gene_id}: {failure.error}")


# =============================================================================
# project command
# =============================================================================


@main.command()
@input_options
@click.option(
    "--genes",
    "-g",
    type=str,
    multiple=True,
    help="Gene ID(s) to project. Comma-separated or repeated. Default: all genes.",
)
@click.option(
    "--gene-list",
    type=click.Path(exists=True, path_type=Path),
    help="File containing gene IDs (one per line).",
)
@click.option(
    "--padding",
    type=int,
    help="Bases added on each side of the reference transcript.",
)
@click.option(
    "--max-memory",
    type=float,
    help="CESAR memory bound in GB.",
)
@click.option(
    "--retry-file",
    type=click.Path(path_type=Path),
    help="Write genes that exceeded the memory bound to this JSON-lines file.",
)
@click.option(
    "--himem/--no-himem",
    default=False,
    show_default=True,
    help="Re-run memory-exceeded genes with the high-memory bound in the same run.",
)
@click.pass_context
def project(
    ctx: click.Context,
    reference: Path,
    target: Path,
    annotation: Path,
    alignment: Path,
    reference_assembly: str,
    target_assembly: str,
    config_path: Optional[Path],
    output: Path,
    cesar_path: Optional[Path],
    clade: Optional[str],
    scratch_dir: Optional[Path],
    canonical: Optional[bool],
    common_slice: Optional[bool],
    use_filter: Optional[bool],
    workers: int,
    genes: tuple[str, ...],
    gene_list: Optional[Path],
    padding: Optional[int],
    max_memory: Optional[float],
    retry_file: Optional[Path],
    himem: bool,
) -> None:
    """Project reference genes onto a target genome.

    Each protein-coding transcript is aligned to its best-supported target
    region with CESAR2.0. Projected transcripts are written as genes to the
    output GFF3; with --filter only those passing the coverage and identity
    thresholds are kept.

    \b
    Examples:
        liftforge project -r ref.fa -t tgt.fa -a ref.gff3 -m ref_tgt.maf -o out.gff3
        liftforge project ... --genes ENSG00000139618 --canonical
        liftforge project ... -j 16 --retry-file himem.jsonl
    """
    from liftforge.core.pipeline import ProjectionInputs
    from liftforge.exceptions import ConfigurationError, ProjectionError
    from liftforge.io.fasta import GenomeAccessor
    from liftforge.io.gff import GFF3Parser

    verbose = ctx.obj.get("verbose", False)

    try:
        config = _build_config(
            config_path, cesar_path, clade, scratch_dir, canonical, common_slice,
            use_filter, padding=padding, max_memory=max_memory,
        )

        gene_ids: list[str] = []
        for item in genes:
            gene_ids.extend(g.strip() for g in item.split(",") if g.strip())
        if gene_list:
            gene_ids.extend(_read_gene_list(gene_list))
        if not gene_ids:
            with GenomeAccessor(reference) as genome:
                gene_ids = GFF3Parser(annotation, genome).gene_ids

        inputs = ProjectionInputs(
            reference_fasta=reference,
            target_fasta=target,
            annotation_gff=annotation,
            alignment_maf=alignment,
            reference_assembly=reference_assembly,
            target_assembly=target_assembly,
            config=config,
        )
        _run_projection(
            ctx, inputs, gene_ids, output, workers, retry_file,
            max_memory_gb=None, himem_lane=himem,
        )

    except (ProjectionError, ConfigurationError, RuntimeError, FileNotFoundError) as e:
        console.print(f"[red]Error:[/red] {e}")
        if verbose:
            console.print_exception()
        raise SystemExit(1)


# =============================================================================
# retry command
# =============================================================================


@main.command()
@input_options
@click.option(
    "--retry-file",
    type=click.Path(exists=True, path_type=Path),
    required=True,
    help="JSON-lines file of retry requests written by 'liftforge project'.",
)
@click.option(
    "--next-retry-file",
    type=click.Path(path_type=Path),
    help="Write genes that still exceed the memory bound to this file.",
)
@click.pass_context
def retry(
    ctx: click.Context,
    reference: Path,
    target: Path,
    annotation: Path,
    alignment: Path,
    reference_assembly: str,
    target_assembly: str,
    config_path: Optional[Path],
    output: Path,
    cesar_path: Optional[Path],
    clade: Optional[str],
    scratch_dir: Optional[Path],
    canonical: Optional[bool],
    common_slice: Optional[bool],
    use_filter: Optional[bool],
    workers: int,
    retry_file: Path,
    next_retry_file: Optional[Path],
) -> None:
    """Re-run genes that exceeded the aligner memory limit.

    Genes are read from the retry file and projected with the high-memory
    bound (projection.himem_max_memory_gb).

    \b
    Examples:
        liftforge retry -r ref.fa -t tgt.fa -a ref.gff3 -m ref_tgt.maf \\
            --retry-file himem.jsonl -o himem.gff3
    """
    from liftforge.core.pipeline import ProjectionInputs, RetryRequest
    from liftforge.exceptions import ConfigurationError, ProjectionError

    verbose = ctx.obj.get("verbose", False)

    try:
        config = _build_config(
            config_path, cesar_path, clade, scratch_dir, canonical, common_slice, use_filter
        )

        with open(retry_file) as f:
            requests = [RetryRequest.from_json(line) for line in f if line.strip()]
        if not requests:
            console.print("[yellow]Warning:[/yellow] No retry requests found")
            return

        inputs = ProjectionInputs(
            reference_fasta=reference,
            target_fasta=target,
            annotation_gff=annotation,
            alignment_maf=alignment,
            reference_assembly=reference_assembly,
            target_assembly=target_assembly,
            config=config,
        )
        _run_projection(
            ctx,
            inputs,
            [r.gene_id for r in requests],
            output,
            workers,
            next_retry_file,
            max_memory_gb=config.projection.himem_max_memory_gb,
            himem_lane=False,
        )

    except (ProjectionError, ConfigurationError, RuntimeError, FileNotFoundError, ValueError, KeyError) as e:
        console.print(f"[red]Error:[/red] {e}")
        if verbose:
            console.print_exception()
        raise SystemExit(1)


# =============================================================================
# config command
# =============================================================================


@main.command("config")
@click.option(
    "-o",
    "--output",
    type=click.Path(path_type=Path),
    required=True,
    help="Output YAML file.",
)
def write_config(output: Path) -> None:
    """Write the default configuration as YAML."""
    from liftforge.config import Config

    Config().save(output)
    console.print(f"[green]Wrote configuration:[/green] {output}")


if __name__ == "__main__":
    main()
