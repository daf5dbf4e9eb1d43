"""CLI commands for clubsite."""

from .club import club_commands
from .season import season_commands


def register_commands(app):
    """Register all CLI command groups with the Flask app."""
    app.cli.add_command(club_commands)
    app.cli.add_command(season_commands)
