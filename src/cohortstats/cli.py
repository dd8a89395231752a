import logging
from collections.abc import Callable
from pathlib import Path
from typing import Annotated, Any, TypeVar

import typer

from cohortstats import api
from cohortstats.config import (
    get_atlas_database_path,
    get_atlas_schema,
    get_query_timeout,
    logger,
    set_atlas_database_path,
    set_atlas_schema,
    set_query_timeout,
)
from cohortstats.console import (
    console,
    info,
    print_error_panel,
    print_key_value,
    print_logo,
    print_rows_table,
    success,
    warning,
)
from cohortstats.core.exceptions import BackendError, InvalidRequestError
from cohortstats.core.subject_sets import PairDefinition
from cohortstats.stats.validation import NOT_APPLICABLE

T = TypeVar("T")

app = typer.Typer(
    name="cohortstats",
    help="cohortstats CLI: cohort overlap, breakdown and data-quality statistics.",
    add_completion=False,
    rich_markup_mode="markdown",
)

EXIT_INVALID_REQUEST = 2
EXIT_BACKEND_FAILURE = 1

PairOption = Annotated[
    list[str] | None,
    typer.Option(
        "--pair",
        "-p",
        help="Cohort pair filter as COHORT_A:COHORT_B[:NAME]. Repeatable.",
    ),
]
ConceptOption = Annotated[
    list[int] | None,
    typer.Option(
        "--concept",
        "-c",
        help="Concept id every subject must have a value for. Repeatable.",
    ),
]


def parse_pair(raw: str) -> PairDefinition:
    """Parse ``A:B`` or ``A:B:name`` into a PairDefinition."""
    parts = raw.split(":", 2)
    if len(parts) < 2:
        raise typer.BadParameter(f"Expected COHORT_A:COHORT_B[:NAME], got '{raw}'")
    try:
        cohort_a, cohort_b = int(parts[0]), int(parts[1])
    except ValueError as e:
        raise typer.BadParameter(f"Cohort ids must be integers, got '{raw}'") from e
    name = parts[2] if len(parts) == 3 else ""
    return PairDefinition(cohort_a, cohort_b, name)


def _run(operation: Callable[[], T]) -> T:
    """Run an engine call, mapping failures to exit codes."""
    try:
        return operation()
    except InvalidRequestError as e:
        print_error_panel("Invalid request", str(e))
        raise typer.Exit(code=EXIT_INVALID_REQUEST)
    except ValueError as e:
        print_error_panel("Invalid request", str(e))
        raise typer.Exit(code=EXIT_INVALID_REQUEST)
    except BackendError as e:
        hint = "The query can be re-issued later." if e.recoverable else None
        print_error_panel("Warehouse failure", str(e), hint)
        raise typer.Exit(code=EXIT_BACKEND_FAILURE)


def version_callback(value: bool):
    if value:
        print_logo(show_tagline=True, show_version=True)
        raise typer.Exit()


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-v",
            callback=version_callback,
            is_eager=True,
            help="Show CLI version.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-V", help="Enable DEBUG level logging."),
    ] = False,
):
    """
    Main callback for the cohortstats CLI. Sets logging level.
    """
    app_logger = logging.getLogger("cohortstats")
    level = logging.DEBUG if verbose else logging.INFO
    app_logger.setLevel(level)
    for handler in app_logger.handlers:
        handler.setLevel(level)
    if verbose:
        logger.debug("Verbose mode enabled via CLI flag.")


@app.command("config")
def config_cmd(
    atlas_db: Annotated[
        Path | None,
        typer.Option("--atlas-db", help="Path of the Atlas catalog DuckDB file."),
    ] = None,
    atlas_schema: Annotated[
        str | None,
        typer.Option("--atlas-schema", help="Schema holding the Atlas tables."),
    ] = None,
    timeout: Annotated[
        float | None,
        typer.Option("--timeout", help="Per-query timeout in seconds."),
    ] = None,
):
    """Show or update the runtime configuration."""
    _run(lambda: _update_config(atlas_db, atlas_schema, timeout))
    print_key_value("Atlas database", get_atlas_database_path())
    print_key_value("Atlas schema", get_atlas_schema())
    print_key_value("Query timeout", f"{get_query_timeout():g}s")


def _update_config(
    atlas_db: Path | None, atlas_schema: str | None, timeout: float | None
) -> None:
    if atlas_db is not None:
        set_atlas_database_path(atlas_db)
        success(f"Atlas database set to {atlas_db}")
    if atlas_schema is not None:
        set_atlas_schema(atlas_schema)
    if timeout is not None:
        set_query_timeout(timeout)


@app.command("sources")
def sources_cmd():
    """List the sources registered in the Atlas catalog."""
    sources = _run(api.list_sources)
    if not sources:
        warning("No sources registered.")
        return
    print_rows_table(
        [("Source id", "right"), ("Name", "left")],
        [[s.source_id, s.source_name] for s in sources],
    )


@app.command("cohorts")
def cohorts_cmd(
    source_id: Annotated[int, typer.Argument(help="Source id.")],
):
    """List cohorts with members in a source, largest first."""
    cohorts = _run(lambda: api.list_cohorts(source_id))
    print_rows_table(
        [("Cohort id", "right"), ("Name", "left"), ("Size", "right")],
        [[c.id, c.name, f"{c.cohort_size:,}"] for c in cohorts],
    )


@app.command("overlap")
def overlap_cmd(
    source_id: Annotated[int, typer.Argument(help="Source id.")],
    case_cohort_id: Annotated[int, typer.Argument(help="Case cohort id.")],
    control_cohort_id: Annotated[int, typer.Argument(help="Control cohort id.")],
    filter_concept_id: Annotated[
        int | None,
        typer.Option("--value-concept", help="Concept whose value must match --value."),
    ] = None,
    filter_value: Annotated[
        str | None,
        typer.Option("--value", help="Required value of --value-concept."),
    ] = None,
    concepts: ConceptOption = None,
    pairs: PairOption = None,
):
    """Count subjects shared by the filtered case and control cohorts."""
    pair_defs = [parse_pair(p) for p in pairs or []]
    value: Any = filter_value
    if filter_concept_id is not None and filter_value is not None:
        # Typed by the concept: "123" stays text for a string concept
        value = _run(
            lambda: api.parse_concept_value(source_id, filter_concept_id, filter_value)
        )
    stats = _run(
        lambda: api.compute_overlap(
            source_id,
            case_cohort_id,
            control_cohort_id,
            filter_concept_id,
            value,
            concepts or [],
            pair_defs,
        )
    )
    print_key_value("Case/control overlap", stats.case_control_overlap)


@app.command("breakdown")
def breakdown_cmd(
    source_id: Annotated[int, typer.Argument(help="Source id.")],
    cohort_id: Annotated[int, typer.Argument(help="Population cohort id.")],
    breakdown_concept_id: Annotated[int, typer.Argument(help="Coded concept to group by.")],
    concepts: ConceptOption = None,
    pairs: PairOption = None,
):
    """Count filtered subjects per value of a coded concept."""
    pair_defs = [parse_pair(p) for p in pairs or []]
    rows = _run(
        lambda: api.compute_breakdown(
            source_id, cohort_id, breakdown_concept_id, concepts or [], pair_defs
        )
    )
    if not rows:
        info("No subjects have a value for the breakdown concept.")
        return
    print_rows_table(
        [("Value", "right"), ("Value name", "left"), ("Subjects", "right")],
        [[r.value, r.value_name, r.count_in_cohort] for r in rows],
    )


@app.command("missing")
def missing_cmd(
    source_id: Annotated[int, typer.Argument(help="Source id.")],
    cohort_id: Annotated[int, typer.Argument(help="Cohort id.")],
    concept_ids: Annotated[list[int], typer.Argument(help="Concept ids to check.")],
):
    """Show the missing-data ratio of each concept within a cohort."""
    stats = _run(lambda: api.compute_missing_ratios(source_id, cohort_id, concept_ids))
    print_rows_table(
        [("Concept", "left"), ("Name", "left"), ("Cohort size", "right"), ("Missing", "right")],
        [
            [s.prefixed_concept_id, s.concept_name, s.cohort_size, f"{s.n_missing_ratio:.1%}"]
            for s in stats
        ],
    )


@app.command("validate")
def validate_cmd(
    source_id: Annotated[int, typer.Argument(help="Source id.")],
    concept_ids: Annotated[
        list[int] | None, typer.Argument(help="Single-valued concept ids to check.")
    ] = None,
):
    """Count subjects holding more than one value for single-valued concepts."""
    n_issues = _run(lambda: api.validate_observation_data(source_id, concept_ids or []))
    if n_issues == NOT_APPLICABLE:
        info("No concepts given; nothing was checked.")
    elif n_issues == 0:
        success("No multi-valued observations found.")
    else:
        warning(f"{n_issues} subject/concept combination(s) hold more than one value.")


@app.command("team-projects")
def team_projects_cmd(
    cohort_ids: Annotated[list[int], typer.Argument(help="Cohort ids of the request.")],
):
    """List team projects that own every given cohort."""
    projects = _run(lambda: api.resolve_owning_team_projects(cohort_ids))
    if not projects:
        warning("No team project owns all of these cohorts.")
        return
    for project in projects:
        console.print(f"  {project}")


if __name__ == "__main__":
    app()
