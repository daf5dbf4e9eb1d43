from flask import Blueprint, render_template

from clubsite.errors import NotFoundError
from clubsite.services.content import format_published
from clubsite.services.public_club import build_club_page, list_directory_clubs

public_bp = Blueprint('public', __name__)


@public_bp.app_template_filter('published')
def published_filter(value):
    return format_published(value)


@public_bp.errorhandler(NotFoundError)
def club_not_found(error):
    return render_template('errors/404.html', message=error.message), 404


@public_bp.route('/')
def directory():
    return render_template('clubs.html', clubs=list_directory_clubs())


@public_bp.route('/<club_id>')
def club_home(club_id):
    page = build_club_page(club_id)
    return render_template(
        'club/home.html',
        page=page,
        profile=page.club.profile,
        menu=page.club.profile.display_settings.menu,
    )
