"""Club management CLI commands."""

import click
from flask.cli import with_appcontext

from clubsite.errors import ClubsiteError
from clubsite.extensions import db
from clubsite.models import ClubProfile
from clubsite.services.clubs import register_club
from clubsite.services.docstore import get_store
from clubsite.services.identity import CLUB_PROFILES, ResolveMode, resolve_club


@click.group('club')
def club_commands():
    """Club management commands."""
    pass


@club_commands.command('init-db')
@with_appcontext
def init_db():
    """Create the document table without running migrations."""
    db.create_all()
    click.echo(click.style('✓ Database tables created', fg='green'))


@club_commands.command('create')
@click.option('--club-id', required=True, help='Public club slug used in URLs')
@click.option('--owner-uid', required=True, help='Account id of the club owner')
@click.option('--name', help='Club name; also creates the first team')
@with_appcontext
def create_club(club_id, owner_uid, name):
    """Register a new club.

    Example:
        flask club create --club-id fc-demo --owner-uid abc123 --name "FC Demo"
    """
    try:
        profile = register_club(owner_uid, club_id, name)
    except ClubsiteError as e:
        click.echo(click.style(f'Error: {e.message}', fg='red'))
        return

    click.echo(click.style('✓ Club created successfully!', fg='green'))
    click.echo(f'  Club ID: {profile.club_id}')
    click.echo(f'  Owner UID: {profile.owner_uid}')
    if profile.main_team_id:
        click.echo(f'  Main team: {profile.main_team_id}')


@club_commands.command('resolve')
@click.argument('identifier')
@click.option('--allow-admin', is_flag=True, help='Also match clubs delegating to IDENTIFIER as admin')
@with_appcontext
def resolve(identifier, allow_admin):
    """Show which club an identifier resolves to, and by which strategy."""
    mode = ResolveMode.DELEGATED if allow_admin else ResolveMode.ACCOUNT
    club = resolve_club(identifier, mode=mode)
    if club is None:
        click.echo(click.style(f'Error: no club matches "{identifier}"', fg='red'))
        return

    click.echo(f'Owner UID: {club.owner_uid}')
    click.echo(f'Club ID: {club.profile.club_id or "-"}')
    click.echo(f'Profile document: {club.profile_doc_id}')
    click.echo(f'Matched by: {club.strategy}')
    click.echo(f'Plan: {club.profile.plan.value}')


@club_commands.command('list')
@with_appcontext
def list_clubs():
    """List all registered clubs."""
    profiles = [ClubProfile.from_snapshot(snap) for snap in get_store().collection(CLUB_PROFILES).stream()]
    if not profiles:
        click.echo('No clubs found.')
        return

    click.echo(f'Found {len(profiles)} club(s):\n')
    for profile in profiles:
        click.echo(f'• {profile.club_name or profile.club_id or profile.doc_id}')
        click.echo(f'  Club ID: {profile.club_id or "-"}')
        click.echo(f'  Owner UID: {profile.owner_uid}')
        click.echo(f'  Plan: {profile.plan.value}')
        click.echo()
