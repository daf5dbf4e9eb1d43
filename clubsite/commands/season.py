"""Season maintenance CLI commands."""

import click
from flask.cli import with_appcontext

from clubsite.services.identity import ResolveMode, resolve_club
from clubsite.services.lifecycle import (
    backfill_public_match_index,
    cleanup_roster,
    delete_season,
    find_orphaned_roster_entries,
)
from clubsite.services.season import is_season_key, season_keys


@click.group('season')
def season_commands():
    """Season and roster maintenance commands."""
    pass


def _checked(owner_uid, season):
    """Return the club's owner UID and the dash season key, or None after reporting why."""
    if not is_season_key(season):
        click.echo(click.style(f'Error: "{season}" is not a season like 2024/25 or 2024-25', fg='red'))
        return None
    club = resolve_club(owner_uid, mode=ResolveMode.ACCOUNT)
    if club is None:
        click.echo(click.style(f'Error: no club matches "{owner_uid}"', fg='red'))
        return None
    return club.owner_uid, season_keys(season)[0]


@season_commands.command('delete')
@click.option('--owner-uid', required=True, help='Account id (or club id) of the club')
@click.option('--season', required=True, help='Season, e.g. 2024/25 or 2024-25')
@click.option('--force', is_flag=True, help='Skip confirmation prompt')
@with_appcontext
def delete(owner_uid, season, force):
    """Delete a season with its roster, player season data and stats caches.

    Safe to run again after a partial failure.
    """
    checked = _checked(owner_uid, season)
    if checked is None:
        return
    owner_uid, dash_key = checked

    if not force and not click.confirm(f'Delete season {dash_key} of {owner_uid}?'):
        click.echo('Operation cancelled.')
        return

    result = delete_season(owner_uid, dash_key)
    click.echo(click.style(f'✓ Season {result.season_id} deleted', fg='green'))
    click.echo(f'  Roster entries deleted: {result.roster_entries_deleted}')
    click.echo(f'  Players updated: {result.players_updated}')
    click.echo(f'  Stats caches invalidated: {result.caches_invalidated}')
    click.echo(f'  Batches committed: {result.batches_committed}')


@season_commands.command('cleanup-roster')
@click.option('--owner-uid', required=True, help='Account id (or club id) of the club')
@click.option('--season', required=True, help='Season, e.g. 2024/25 or 2024-25')
@click.option('--dry-run', is_flag=True, help='Only list orphaned roster entries')
@with_appcontext
def cleanup(owner_uid, season, dry_run):
    """Remove roster entries whose player no longer exists in any team."""
    checked = _checked(owner_uid, season)
    if checked is None:
        return
    owner_uid, dash_key = checked

    if dry_run:
        orphaned = find_orphaned_roster_entries(owner_uid, dash_key)
        click.echo(f'{len(orphaned)} orphaned roster entr{"y" if len(orphaned) == 1 else "ies"}')
        for ref in orphaned:
            click.echo(f'  {ref.id}')
        return

    result = cleanup_roster(owner_uid, dash_key)
    click.echo(click.style(f'✓ Removed {result.deleted_roster_count} orphaned roster entries', fg='green'))
    for player_id in result.removed_player_ids:
        click.echo(f'  {player_id}')


@season_commands.command('backfill-match-index')
@click.option('--owner-uid', required=True, help='Account id (or club id) of the club')
@click.option('--force', is_flag=True, help='Rebuild even when the index already has rows')
@with_appcontext
def backfill_match_index(owner_uid, force):
    """Build the public match index from competition and friendly matches."""
    club = resolve_club(owner_uid, mode=ResolveMode.ACCOUNT)
    if club is None:
        click.echo(click.style(f'Error: no club matches "{owner_uid}"', fg='red'))
        return

    result = backfill_public_match_index(club.owner_uid, force=force)
    if result.already_indexed:
        click.echo(click.style('Match index already populated; use --force to rebuild', fg='yellow'))
        return
    click.echo(click.style(f'✓ Indexed {result.rows_written} matches', fg='green'))
    click.echo(f'  Batches committed: {result.batches_committed}')
