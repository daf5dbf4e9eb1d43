"""Admin CRUD for teams, players, seasons, rosters and news."""

from __future__ import annotations

from flask import g, jsonify

from clubsite.auth import club_admin_required
from clubsite.errors import NotFoundError
from clubsite.services.content import create_news, delete_news, list_news
from clubsite.services.roster import (
    add_to_roster,
    create_player,
    create_season,
    create_team,
    delete_player,
    list_players,
    list_roster,
    list_seasons,
    list_teams,
    remove_from_roster,
    update_player,
)

from .routes import api_bp, json_body, required_str


# ==== TEAMS ====

@api_bp.route('/admin/teams', methods=['GET'])
@club_admin_required
def admin_list_teams():
    return jsonify({'items': [team.to_dict() for team in list_teams(g.club)]})


@api_bp.route('/admin/teams', methods=['POST'])
@club_admin_required
def admin_create_team():
    team = create_team(g.club, json_body())
    return jsonify(team.to_dict()), 201


# ==== PLAYERS ====

@api_bp.route('/admin/teams/<team_id>/players', methods=['GET'])
@club_admin_required
def admin_list_players(team_id):
    return jsonify({'items': [player.to_dict() for player in list_players(g.club, team_id)]})


@api_bp.route('/admin/teams/<team_id>/players', methods=['POST'])
@club_admin_required
def admin_create_player(team_id):
    player = create_player(g.club, team_id, json_body())
    return jsonify(player.to_dict()), 201


@api_bp.route('/admin/teams/<team_id>/players/<player_id>', methods=['PATCH'])
@club_admin_required
def admin_update_player(team_id, player_id):
    player = update_player(g.club, team_id, player_id, json_body())
    return jsonify(player.to_dict())


@api_bp.route('/admin/teams/<team_id>/players/<player_id>', methods=['DELETE'])
@club_admin_required
def admin_delete_player(team_id, player_id):
    if not delete_player(g.club, team_id, player_id):
        raise NotFoundError("Player not found")
    return jsonify({'success': True})


# ==== SEASONS ====

@api_bp.route('/admin/seasons', methods=['GET'])
@club_admin_required
def admin_list_seasons():
    return jsonify({'items': [season.to_dict() for season in list_seasons(g.club)]})


@api_bp.route('/admin/seasons', methods=['POST'])
@club_admin_required
def admin_create_season():
    season, created = create_season(g.club, json_body().get('season'))
    return jsonify(season.to_dict()), 201 if created else 200


@api_bp.route('/admin/seasons/<season>/roster', methods=['GET'])
@club_admin_required
def admin_list_roster(season):
    entries = list_roster(g.club, season)
    return jsonify({'items': [{'playerId': e.player_id, 'teamId': e.team_id} for e in entries]})


@api_bp.route('/admin/seasons/<season>/roster', methods=['POST'])
@club_admin_required
def admin_add_to_roster(season):
    body = json_body()
    entry = add_to_roster(g.club, season, required_str(body, 'teamId'), required_str(body, 'playerId'))
    return jsonify({'playerId': entry.player_id, 'seasonId': entry.season_id, 'teamId': entry.team_id}), 201


@api_bp.route('/admin/seasons/<season>/roster/<player_id>', methods=['DELETE'])
@club_admin_required
def admin_remove_from_roster(season, player_id):
    if not remove_from_roster(g.club, season, player_id):
        raise NotFoundError("Roster entry not found")
    return jsonify({'success': True})


# ==== NEWS ====

@api_bp.route('/admin/news', methods=['GET'])
@club_admin_required
def admin_list_news():
    return jsonify({'items': [article.to_dict() for article in list_news(g.club)]})


@api_bp.route('/admin/news', methods=['POST'])
@club_admin_required
def admin_create_news():
    article = create_news(g.club, json_body())
    return jsonify(article.to_dict()), 201


@api_bp.route('/admin/news/<news_id>', methods=['DELETE'])
@club_admin_required
def admin_delete_news(news_id):
    if not delete_news(g.club, news_id):
        raise NotFoundError("News article not found")
    return jsonify({'success': True})
