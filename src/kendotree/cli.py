"""Command-line interface for kendotree."""

import logging

import click

from kendotree import __version__


@click.group()
@click.version_option(version=__version__)
@click.option("--db", "db_path", default=None, help="Path to SQLite database (default: .kendotree/kendotree.sqlite)")
@click.option("--verbose", is_flag=True, help="Show generation details")
@click.pass_context
def cli(ctx, db_path: str, verbose: bool):
    """Kendo Tree - first-stage tree generator for kendo championships."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["db_path"] = db_path


def get_session(ctx):
    """Open a session on the CLI database, creating tables if needed."""
    from kendotree.storage import DatabaseManager

    db = DatabaseManager(ctx.obj["db_path"])
    db.create_tables()
    session = db.get_session()
    ctx.call_on_close(session.close)
    return session


def get_championship_or_abort(session, championship_id: int):
    from kendotree.storage import ChampionshipRepository

    championship = ChampionshipRepository(session).get_by_id(championship_id)
    if championship is None:
        click.echo(f"[ERROR] Championship {championship_id} not found", err=True)
        raise click.Abort()
    return championship


@cli.command()
@click.option("--name", required=True, help="Championship name")
@click.option("--team/--individual", "is_team", default=False, help="Team championship")
@click.pass_context
def create_championship(ctx, name: str, is_team: bool):
    """Create a championship.

    Example:
        kendotree create-championship --name "Men Individual"
    """
    from kendotree.storage import ChampionshipRepository

    session = get_session(ctx)
    championship = ChampionshipRepository(session).create(name=name, is_team=is_team)
    kind = "team" if is_team else "individual"
    click.echo(f"[SUCCESS] Created {kind} championship '{name}' with id {championship.id}")


@cli.command()
@click.option("--championship", "championship_id", required=True, type=int, help="Championship ID")
@click.option("--csv", "csv_path", required=True, help="Path to competitors/teams CSV file")
@click.pass_context
def import_participants(ctx, championship_id: int, csv_path: str):
    """Import competitors (or teams for a team championship) from CSV.

    Competitor CSV columns: first_name,last_name[,federation,association,club]
    Team CSV columns: name[,federation,association,club]

    Example:
        kendotree import-participants --championship 1 --csv data/competitors.csv
    """
    from kendotree.io_csv import CSVImportError, import_participants_csv
    from kendotree.storage import ParticipantRepository

    session = get_session(ctx)
    championship = get_championship_or_abort(session, championship_id)

    try:
        click.echo(f"[INFO] Reading CSV file: {csv_path}")
        participants = import_participants_csv(csv_path, is_team=championship.is_team)
    except CSVImportError as e:
        click.echo(f"[ERROR] CSV Import Error: {e}", err=True)
        raise click.Abort()

    if not participants:
        click.echo("[WARNING] No participants to import")
        return

    participant_repo = ParticipantRepository(session)
    for participant in participants:
        participant_repo.add(participant, championship.id)

    click.echo(f"[SUCCESS] Imported {len(participants)} participants")


@cli.command()
@click.option("--championship", "championship_id", required=True, type=int, help="Championship ID")
@click.option("--config", required=True, help="Path to settings YAML file")
@click.pass_context
def configure(ctx, championship_id: int, config: str):
    """Save tree settings of a championship from a YAML file.

    Example:
        kendotree configure --championship 1 --config config/settings.yaml
    """
    from kendotree.config_loader import ConfigError, load_and_validate_config, settings_from_config
    from kendotree.storage import ChampionshipRepository

    try:
        click.echo(f"[INFO] Loading config from: {config}")
        cfg = load_and_validate_config(config)
    except ConfigError as e:
        click.echo(f"[ERROR] Configuration Error: {e}", err=True)
        raise click.Abort()

    session = get_session(ctx)
    championship = get_championship_or_abort(session, championship_id)

    championship_repo = ChampionshipRepository(session)
    settings = settings_from_config(cfg)
    championship_repo.save_settings(championship.id, settings, random_seed=cfg["random_seed"])
    championship_repo.set_group_by(championship.id, cfg["group_by"])

    preliminary = f"yes ({settings.preliminary_group_size})" if settings.has_preliminary else "no"
    click.echo(f"[SUCCESS] Settings saved for '{championship.name}'")
    click.echo(f"  Preliminary: {preliminary}")
    click.echo(f"  Tree type: {settings.tree_type.label}")
    click.echo(f"  Fighting areas: {settings.fighting_areas}")
    click.echo(f"  Group by: {cfg['group_by'] or 'none'}")
    if cfg["random_seed"] is not None:
        click.echo(f"  Random seed: {cfg['random_seed']}")


@cli.command()
@click.option("--championship", "championship_id", required=True, type=int, help="Championship ID")
@click.option("--seed", type=int, default=None, help="Random seed for a reproducible draw (default: seed saved by configure)")
@click.pass_context
def generate_tree(ctx, championship_id: int, seed: int):
    """Generate first-stage rounds, replacing any previous tree.

    Example:
        kendotree generate-tree --championship 1
    """
    from kendotree.storage import StorageError
    from kendotree.tree_gen import TreeGenerationError, generate_tree as run_tree_gen

    session = get_session(ctx)
    championship = get_championship_or_abort(session, championship_id)

    click.echo(f"[BUILD] Generating tree for '{championship.name}'...")
    try:
        rounds = run_tree_gen(session, championship.id, random_seed=seed)
    except TreeGenerationError as e:
        click.echo(f"[ERROR] {e}", err=True)
        raise click.Abort()
    except StorageError as e:
        click.echo(f"[ERROR] Storage Error: {e}", err=True)
        raise click.Abort()

    areas = sorted({r.area for r in rounds})
    click.echo(f"[SUCCESS] Created {len(rounds)} rounds in {len(areas)} area(s)")
    for area in areas:
        area_rounds = [r for r in rounds if r.area == area]
        click.echo(f"  Area {area}: {len(area_rounds)} rounds")


@cli.command()
@click.option("--championship", "championship_id", required=True, type=int, help="Championship ID")
@click.pass_context
def show_rounds(ctx, championship_id: int):
    """Print the generated rounds of a championship.

    Example:
        kendotree show-rounds --championship 1
    """
    from kendotree.storage import ParticipantRepository, RoundRepository

    session = get_session(ctx)
    championship = get_championship_or_abort(session, championship_id)

    rounds = RoundRepository(session).get_rounds(championship.id, championship.is_team)
    if not rounds:
        click.echo("[WARNING] No rounds yet, run 'kendotree generate-tree' first")
        return

    names = ParticipantRepository(session).get_names_by_id(championship.id, championship.is_team)
    current_area = None
    for round_ in rounds:
        if round_.area != current_area:
            current_area = round_.area
            click.echo(f"\nArea {current_area}")
        seats = [names.get(member_id, f"#{member_id}") for member_id in round_.member_ids]
        seats += ["BYE"] * round_.bye_count
        click.echo(f"  {round_.order:>2}. " + " vs ".join(seats))


@cli.command()
@click.option("--championship", "championship_id", required=True, type=int, help="Championship ID")
@click.option("--out", required=True, help="Output CSV path")
@click.pass_context
def export_rounds(ctx, championship_id: int, out: str):
    """Export generated rounds to CSV.

    Example:
        kendotree export-rounds --championship 1 --out rounds.csv
    """
    from kendotree.io_csv import export_rounds_csv
    from kendotree.storage import ParticipantRepository, RoundRepository

    session = get_session(ctx)
    championship = get_championship_or_abort(session, championship_id)

    rounds = RoundRepository(session).get_rounds(championship.id, championship.is_team)
    names = ParticipantRepository(session).get_names_by_id(championship.id, championship.is_team)
    export_rounds_csv(rounds, names, out)
    click.echo(f"[SUCCESS] Exported {len(rounds)} rounds to {out}")


if __name__ == "__main__":
    cli()
