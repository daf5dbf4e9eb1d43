"""Unauthenticated read endpoints for public club pages."""

from __future__ import annotations

from flask import jsonify, request

from clubsite.errors import NotFoundError
from clubsite.services.player_stats import get_public_player_stats
from clubsite.services.public_club import (
    build_club_page,
    menu_settings,
    partners_enabled,
    partners_strip,
)
from clubsite.services.standings import get_public_standings

from .routes import api_bp


@api_bp.route('/club/<club_id>', methods=['GET'])
def club_page(club_id):
    return jsonify(build_club_page(club_id).to_dict())


@api_bp.route('/club-summary/<club_id>', methods=['GET'])
def club_summary(club_id):
    page = build_club_page(club_id, summary=True)
    payload = page.to_dict()
    return jsonify({
        'ownerUid': payload['ownerUid'],
        'profile': payload['profile'],
        'heroNewsLimit': payload['heroNewsLimit'],
        'news': payload['news'],
    })


@api_bp.route('/public/club/<club_id>/menu-settings', methods=['GET'])
def club_menu_settings(club_id):
    return jsonify(menu_settings(club_id))


@api_bp.route('/public/club/<club_id>/partners-enabled', methods=['GET'])
def club_partners_enabled(club_id):
    return jsonify({'enabled': partners_enabled(club_id)})


@api_bp.route('/public/club/<club_id>/partners-strip', methods=['GET'])
def club_partners_strip(club_id):
    return jsonify({'partners': [partner.to_dict() for partner in partners_strip(club_id)]})


@api_bp.route('/public/club/<club_id>/players/<player_id>/stats', methods=['GET'])
def player_stats(club_id, player_id):
    stats = get_public_player_stats(club_id, player_id)
    if stats is None:
        raise NotFoundError("Player not found")
    return jsonify(stats)


@api_bp.route('/public/club/<club_id>/standings', methods=['GET'])
def club_standings(club_id):
    return jsonify(get_public_standings(club_id, request.args.get('competitionId', '').strip()))
