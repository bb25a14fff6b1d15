import asyncio

import click

from pscore.admin.reports import render_history, render_leaderboard, render_report
from pscore.config.logging_config import configure_logging
from pscore.database import init_db as create_tables, reset_db as recreate_tables
from pscore.services.exceptions import GenerationInProgress, StorageUnavailable, ValidationError
from pscore.services.session import SessionController, get_session_controller

profile_option = click.option("--profile", default="default", show_default=True, help="Profile to act on")

def _run(coro):
    return asyncio.run(coro)

async def _load(profile: str) -> SessionController:
    controller = get_session_controller(profile)
    try:
        await controller.activate()
    except StorageUnavailable as e:
        raise click.ClickException(str(e))
    return controller

def _echo_error(controller: SessionController):
    if controller.error:
        click.echo(f"Error: {controller.error}", err=True)

def _echo_leaderboards(controller: SessionController):
    if not controller.has_posted:
        click.echo("Leaderboards are hidden. Post your score to view the full leaderboards.")
        return
    run_hash = controller.user_entry.run_hash if controller.user_entry else None
    click.echo(render_leaderboard(
        "Verified Leaderboard (Ranked)", controller.verified_leaderboard, True, run_hash
    ))
    click.echo()
    click.echo(render_leaderboard(
        "Unverified Submissions", controller.unverified_leaderboard, False, run_hash
    ))

@click.group()
def cli():
    configure_logging()

@cli.command()
def init_db():
    """Initialize the database schema"""
    click.echo("Creating database tables...")
    create_tables()
    click.echo("Done!")

@cli.command()
def reset_db():
    """Reset the database (WARNING: destroys all data)"""
    if click.confirm('Are you sure you want to reset the database?'):
        click.echo("Dropping and recreating all tables...")
        recreate_tables()
        click.echo("Done!")

@cli.command()
@profile_option
@click.argument("name")
def username(profile, name):
    """Set the username used for new scores"""
    async def run():
        controller = await _load(profile)
        error = controller.set_username(name)
        if error:
            raise click.ClickException(error)
        click.echo(f"Username set to {name}")
    _run(run())

@cli.command()
@profile_option
@click.option("--username", "name", default=None, help="Username to generate the score for")
@click.option("--timeout", default=120.0, show_default=True, help="Cancel generation after this many seconds")
def generate(profile, name, timeout):
    """Generate a new productivity score"""
    async def run():
        controller = await _load(profile)
        try:
            task = await controller.start(name)
        except (ValidationError, GenerationInProgress) as e:
            raise click.ClickException(str(e))

        click.echo(f"Generating your utilization report (about {controller.estimated_time}s)...")
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout)
        except asyncio.TimeoutError:
            controller.cancel()

        if controller.current_score is None:
            raise click.ClickException(controller.error or "Score generation failed.")
        click.echo(render_report(controller.current_score, controller.username))
    _run(run())

@cli.command()
@profile_option
@click.option("--select", "index", type=int, default=None, help="History entry to display")
def history(profile, index):
    """List past scores, optionally showing one of them"""
    async def run():
        controller = await _load(profile)
        if index is not None:
            try:
                entry = controller.select_history(index)
            except ValidationError as e:
                raise click.ClickException(str(e))
            click.echo(render_report(entry, controller.username))
            click.echo()
        click.echo(render_history(controller.history, controller.selected_history_index))
    _run(run())

@cli.command()
@profile_option
def show(profile):
    """Show the latest score report"""
    async def run():
        controller = await _load(profile)
        if controller.current_score is None:
            click.echo("No score yet. Run 'generate' first.")
            return
        click.echo(render_report(controller.current_score, controller.username))
        click.echo()
        click.echo(controller.share_text())
    _run(run())

@cli.command()
@profile_option
def post(profile):
    """Post the latest score to the unverified feed"""
    async def run():
        controller = await _load(profile)
        if not await controller.post_unverified():
            click.echo("Nothing to post." if not controller.user_entry else "Already posted.")
        _echo_error(controller)
        _echo_leaderboards(controller)
    _run(run())

@cli.command()
@profile_option
def verify(profile):
    """Mark the latest score as verified and show the ranked leaderboard"""
    async def run():
        controller = await _load(profile)
        if not await controller.get_verified():
            click.echo("Nothing to verify. Run 'generate' first.")
            return
        _echo_error(controller)
        _echo_leaderboards(controller)
    _run(run())

@cli.command()
@profile_option
def leaderboard(profile):
    """Print both leaderboards"""
    async def run():
        # Loading a posted profile refreshes its leaderboards
        controller = await _load(profile)
        _echo_error(controller)
        _echo_leaderboards(controller)
    _run(run())

if __name__ == '__main__':
    cli()
