"""Authenticated club endpoints: registration, settings and lifecycle operations."""

from __future__ import annotations

from flask import current_app, g, jsonify
from flask_login import current_user

from clubsite.auth import club_admin_required, token_required
from clubsite.extensions import limiter
from clubsite.security import like_rate_limit, registration_rate_limit
from clubsite.services.clubs import register_club, set_transfers_public, update_club
from clubsite.services.content import toggle_like
from clubsite.services.lifecycle import (
    backfill_public_match_index,
    cleanup_roster,
    delete_season,
    invalidate_player_stats_cache,
)
from clubsite.services.roster import require_season_key

from .routes import api_bp, json_body, required_str


@api_bp.route('/club/register', methods=['POST'])
@limiter.limit(registration_rate_limit)
@token_required
def register():
    body = json_body()
    club_name = body.get('clubName')
    profile = register_club(
        current_user.uid,
        required_str(body, 'clubId'),
        club_name if isinstance(club_name, str) else None,
    )
    return jsonify({
        'success': True,
        'docId': profile.doc_id,
        'clubId': profile.club_id,
        'ownerUid': profile.owner_uid,
        'mainTeamId': profile.main_team_id,
    }), 201


@api_bp.route('/club/update', methods=['POST'])
@club_admin_required
def update():
    patch = update_club(g.club, current_user.uid, json_body())
    return jsonify({'success': True, 'updated': sorted(patch)})


@api_bp.route('/club/transfers-public', methods=['GET'])
@club_admin_required
def get_transfers_public():
    return jsonify({'transfersPublic': g.club.profile.transfers_public})


@api_bp.route('/club/transfers-public', methods=['POST'])
@club_admin_required
def post_transfers_public():
    value = set_transfers_public(g.club, current_user.uid, json_body().get('transfersPublic'))
    return jsonify({'success': True, 'transfersPublic': value})


@api_bp.route('/club/delete-season', methods=['POST'])
@club_admin_required
def delete_season_route():
    dash_key, _ = require_season_key(json_body().get('season'))
    result = delete_season(g.club.owner_uid, dash_key)
    current_app.logger.info(
        f"Season {dash_key} deleted for {g.club.owner_uid} by {current_user.uid}"
    )
    return jsonify({'success': True, **result.to_dict()})


@api_bp.route('/club/cleanup-roster', methods=['POST'])
@club_admin_required
def cleanup_roster_route():
    dash_key, _ = require_season_key(json_body().get('season'))
    result = cleanup_roster(g.club.owner_uid, dash_key)
    return jsonify({
        'success': True,
        'seasonId': result.season_id,
        'deletedRosterCount': result.deleted_roster_count,
        'removedPlayerIds': result.removed_player_ids,
    })


@api_bp.route('/club/invalidate-player-stats-cache', methods=['POST'])
@club_admin_required
def invalidate_stats_cache():
    player_id = required_str(json_body(), 'playerId')
    invalidate_player_stats_cache(g.club.owner_uid, player_id)
    return jsonify({'success': True})


@api_bp.route('/news/like', methods=['POST'])
@limiter.limit(like_rate_limit)
def like_news():
    body = json_body()
    liked, like_count = toggle_like(body.get('clubId'), body.get('newsId'), body.get('visitorId'))
    return jsonify({'liked': liked, 'likeCount': like_count})


@api_bp.route('/club/backfill-public-match-index', methods=['POST'])
@club_admin_required
def backfill_match_index():
    result = backfill_public_match_index(g.club.owner_uid)
    if not result.already_indexed:
        current_app.logger.info(
            f"Public match index rebuilt for {g.club.owner_uid}: {result.rows_written} rows"
        )
    return jsonify({'success': True, **result.to_dict()})
