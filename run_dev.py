#!/usr/bin/env python3
"""Development server runner for clubsite."""

import os
import sys
from pathlib import Path

from dotenv import load_dotenv


def setup_environment():
    """Set up the development environment."""
    project_root = Path(__file__).parent
    sys.path.insert(0, str(project_root))

    env_file = project_root / '.env'
    if env_file.exists():
        load_dotenv(env_file)
        print(f"✓ Loaded environment from {env_file}")
    else:
        print(f"⚠️ No .env file found at {env_file}")

    os.environ.setdefault('FLASK_APP', 'clubsite:create_app')
    os.environ.setdefault('FLASK_ENV', 'development')
    os.environ.setdefault('FLASK_DEBUG', '1')


def run_development_server():
    """Run the Flask development server."""
    from clubsite import create_app

    app = create_app()
    app.config['SESSION_COOKIE_SECURE'] = False

    print("\n" + "=" * 60)
    print("🚀 Starting clubsite development server")
    print("=" * 60)
    print(f"Database: {app.config['SQLALCHEMY_DATABASE_URI'].split('@')[-1]}")
    print(f"Stripe configured: {bool(app.config.get('STRIPE_SECRET_KEY'))}")
    print("\n📱 Access the application at http://localhost:5000")
    print("\n🛠️ To create a demo club, run in another terminal:")
    print("   flask club create --club-id demo --owner-uid demo-owner --name 'Demo FC'")
    print("   Then visit: http://localhost:5000/demo")
    print("\n⏹️ Press Ctrl+C to stop the server")
    print("=" * 60)

    app.run(host='0.0.0.0', port=5000, debug=True, use_reloader=True)


def main():
    print("clubsite - Development Setup")
    print("=" * 60)
    setup_environment()
    try:
        run_development_server()
    except KeyboardInterrupt:
        print("\n\n🛑 Development server stopped by user")


if __name__ == "__main__":
    main()
