import typer
import os
import logging
from typing import Optional
from typing_extensions import Annotated
from tqdm import tqdm

from amcheck import runner
from amcheck.config_loader import load_config
from amcheck.exceptions import AMCheckError
from amcheck.reporting import format_configuration
from amcheck.schema import SearchConfig, SamplingConfig
from amcheck.spins import parse_spins
from amcheck.structure import CrystalStructure

app = typer.Typer(help="AMCheck: altermagnetism detection from crystal symmetry")

logger = logging.getLogger("amcheck")

TEMPLATE = """
structure:
  file: POSCAR
  # or inline:
  # lattice_vectors: [[4.1, 0, 0], [-2.05, 3.551, 0], [0, 0, 6.7]]
  # atoms:
  #   - {element: Mn, pos: [0, 0, 0], spin: u}
  #   - {element: Mn, pos: [0, 0, 0.5], spin: d}
  #   - {element: Te, pos: [0.3333, 0.6667, 0.25]}
  #   - {element: Te, pos: [0.6667, 0.3333, 0.75]}
  spins: "u d n n"

symmetry:
  symprec: 0.001

analysis:
  tolerance: 0.001

search:
  enabled: false
  mode: auto
  executor: thread
  sampling:
    max_samples: 1000000
    early_stop: 100
""".strip()


@app.callback()
def main_options(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show per-orbit diagnostics")] = False,
):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(message)s',
        datefmt='%H:%M:%S',
    )


def _load(structure_file: str, symprec: float) -> CrystalStructure:
    if not os.path.exists(structure_file):
        typer.secho(f"Error: File {structure_file} not found.", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    try:
        return CrystalStructure.from_file(structure_file).analyze_symmetry(symprec)
    except Exception as e:
        typer.secho(f"Error: could not read {structure_file}: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)


@app.command()
def init(
    filename: Annotated[str, typer.Argument(help="Filename for the new config")] = "amcheck.yaml"
):
    """
    Generate a template configuration file.
    """
    if os.path.exists(filename):
        typer.confirm(f"{filename} already exists. Overwrite?", abort=True)
    with open(filename, "w") as f:
        f.write(TEMPLATE + "\n")
    typer.echo(f"Created template config: {filename}")


@app.command()
def validate(
    config_file: Annotated[str, typer.Argument(help="Path to the config.yaml file")]
):
    """
    Validate a configuration file against the schema.
    """
    if not os.path.exists(config_file):
        typer.secho(f"Error: File {config_file} not found.", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    try:
        load_config(config_file)
        typer.secho(f"Success: {config_file} is valid.", fg=typer.colors.GREEN)
    except ValueError as e:
        typer.secho("Validation Failed:", fg=typer.colors.RED)
        typer.echo(str(e))
        raise typer.Exit(code=1)


@app.command()
def run(
    config_file: Annotated[str, typer.Argument(help="Path to the config.yaml file")]
):
    """
    Run the tasks defined in the configuration file.
    """
    try:
        runner.run_calculation(config_file, confirm=_confirm_large_search)
        typer.secho("Run completed successfully.", fg=typer.colors.GREEN)
    except (AMCheckError, ValueError, OSError) as e:
        typer.secho(f"Run failed: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)


@app.command()
def check(
    structure_file: Annotated[str, typer.Argument(help="Structure file (POSCAR, CIF, ...)")],
    spins: Annotated[str, typer.Option("--spins", "-s", help='Spins per atom, e.g. "u d n n"')] = "",
    tolerance: Annotated[float, typer.Option("--tolerance", "-t")] = 1e-3,
    symprec: Annotated[float, typer.Option("--symprec")] = 1e-3,
):
    """
    Check whether one spin configuration is altermagnetic.
    """
    structure = _load(structure_file, symprec)
    typer.echo(f"Space group: {structure.space_group(symprec)}")
    try:
        outcome = runner.check_configuration(
            structure, parse_spins(spins, structure.num_atoms), tolerance
        )
    except AMCheckError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    if outcome.is_altermagnetic:
        typer.secho("RESULT: ALTERMAGNET!", fg=typer.colors.GREEN, bold=True)
    else:
        typer.secho("RESULT: NOT ALTERMAGNET", fg=typer.colors.YELLOW, bold=True)


def _confirm_large_search(n_magnetic: int, total: int) -> bool:
    return typer.confirm(
        f"{n_magnetic} magnetic atoms give {total} configurations. "
        "Continue with the full exhaustive search?",
        default=False,
    )


@app.command()
def search(
    structure_file: Annotated[str, typer.Argument(help="Structure file (POSCAR, CIF, ...)")],
    mode: Annotated[str, typer.Option(help="auto, exhaustive or sampling")] = "auto",
    workers: Annotated[Optional[int], typer.Option(help="Number of workers (default: all cores)")] = None,
    executor: Annotated[str, typer.Option(help="thread or process")] = "thread",
    seed: Annotated[Optional[int], typer.Option(help="Seed for sampling mode")] = None,
    output: Annotated[Optional[str], typer.Option("--output", "-o")] = None,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not ask before large searches")] = False,
    tolerance: Annotated[float, typer.Option("--tolerance", "-t")] = 1e-3,
    symprec: Annotated[float, typer.Option("--symprec")] = 1e-3,
):
    """
    Search all up/down spin configurations of the magnetic atoms.
    """
    structure = _load(structure_file, symprec)
    typer.echo(f"Space group: {structure.space_group(symprec)}")
    try:
        search_config = SearchConfig(
            enabled=True,
            mode=mode,
            workers=workers,
            executor=executor,
            confirm_large=yes,
            output_file=output,
            sampling=SamplingConfig(seed=seed),
        )
    except ValueError as e:
        typer.secho(f"Invalid option: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    with tqdm(desc="Configurations", unit="cfg", leave=False) as pbar:

        def show_progress(completed: int, total: int, found: int):
            pbar.total = total
            pbar.update(completed - pbar.n)
            pbar.set_postfix(found=found)

        def show_match(config):
            pbar.write(format_configuration(config, structure.symbols))

        try:
            result = runner.run_search(
                structure,
                search_config,
                tolerance,
                confirm=None if yes else _confirm_large_search,
                on_match=show_match,
                progress_callback=show_progress,
            )
        except AMCheckError as e:
            typer.secho(f"Search failed: {e}", fg=typer.colors.RED)
            raise typer.Exit(code=1)

    typer.echo(
        f"Tested {result.tested} configurations, found {result.found} altermagnetic "
        f"({100.0 * result.fraction:.2f}%)."
    )


# Entry point for setuptools
def main():
    app()


if __name__ == "__main__":
    app()
