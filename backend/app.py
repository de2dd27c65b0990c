"""
Nonprofit Donations & Events Application
Main application module.
Initialises the Flask app, database, and registers all API blueprints.
"""

# IMPORTANT: Load environment variables FIRST before other imports
from dotenv import load_dotenv
load_dotenv()

from flask import Flask, jsonify, request
from flask_cors import CORS
import os
import logging
from datetime import datetime

# Import application modules
from database import init_db
from email_config import is_email_configured
from sheets_sync import is_sheets_configured
from payment_gateways import configured_processors, DEFAULT_PROCESSOR

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)

# Initialize Flask app
app = Flask(__name__)

# Configuration
DEBUG = os.environ.get('DEBUG', 'False').lower() in ('1', 'true', 'yes')
PORT = int(os.environ.get('PORT', 5000))
SITE_BASE_URL = os.environ.get('SITE_BASE_URL', 'https://thejre.org').rstrip('/')
LOCAL_ORIGINS = ['http://localhost:3000', 'http://localhost:5000', 'http://127.0.0.1:5000']


def allowed_origins():
    """
    Origins allowed to call /api/*.

    CORS_ORIGINS (comma-separated) wins outright; otherwise the public site,
    its www. twin and the local dev servers.
    """
    configured = [o.strip().rstrip('/') for o in os.environ.get('CORS_ORIGINS', '').split(',') if o.strip()]
    if configured:
        return configured

    origins = list(LOCAL_ORIGINS)
    if SITE_BASE_URL:
        origins.append(SITE_BASE_URL)
        scheme, _, host = SITE_BASE_URL.partition('://')
        if host and not host.startswith('www.'):
            origins.append(f"{scheme}://www.{host}")
    return origins


CORS(app, resources={r"/api/*": {"origins": allowed_origins()}})

# Initialize database on startup
init_db()


# ========================================
# Import and Register Blueprints
# ========================================

from routes_api_admin import admin_api_bp
from routes_api_contact import contact_bp
from routes_api_cron import cron_api_bp
from routes_api_donate import donate_api_bp
from routes_api_events import events_api_bp

app.register_blueprint(admin_api_bp)
app.register_blueprint(contact_bp)
app.register_blueprint(cron_api_bp)
app.register_blueprint(donate_api_bp)
app.register_blueprint(events_api_bp)


# ========================================
# Security headers middleware
# ========================================

@app.after_request
def add_security_headers(response):
    """API responses are never cached and never framed"""
    if 'Cache-Control' not in response.headers:
        response.headers['Cache-Control'] = 'no-cache, no-store, must-revalidate'
        response.headers['Pragma'] = 'no-cache'
        response.headers['Expires'] = '0'

    response.headers['X-Content-Type-Options'] = 'nosniff'
    response.headers['X-Frame-Options'] = 'DENY'

    if not DEBUG and request.is_secure:
        response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'

    return response


# Health check
@app.route('/health')
@app.route('/api/health')
def health():
    """Health check with which integrations are configured (never their values)"""
    return jsonify({
        'status': 'ok',
        'service': 'Nonprofit Donations API',
        'version': '1.0.0',
        'timestamp': datetime.now().isoformat(),
        'integrations': {
            'payments': configured_processors(),
            'default_processor': DEFAULT_PROCESSOR,
            'email': is_email_configured(),
            'sheets': is_sheets_configured(),
            'cron_secret': bool(os.environ.get('CRON_SECRET'))
        }
    })


# ========================================
# Error Handlers
# ========================================

@app.errorhandler(404)
def not_found(e):
    """Handle 404 errors"""
    return jsonify({
        'success': False,
        'error': 'Endpoint not found'
    }), 404


@app.errorhandler(405)
def method_not_allowed(e):
    return jsonify({
        'success': False,
        'error': 'Method not allowed'
    }), 405


@app.errorhandler(500)
def internal_error(e):
    """Handle 500 errors"""
    logger.error(f"Internal server error: {e}", exc_info=True)
    return jsonify({
        'success': False,
        'error': 'Internal server error'
    }), 500


# ========================================
# Application Entry Point
# ========================================

if __name__ == '__main__':
    logger.info("=" * 60)
    logger.info("Nonprofit Donations & Events API Starting")
    logger.info("=" * 60)
    logger.info(f"Server URL: http://localhost:{PORT}")
    logger.info(f"Debug mode: {DEBUG}")
    logger.info(f"Payment processors: {configured_processors()}")
    logger.info(f"API Endpoints: http://localhost:{PORT}/api/*")
    logger.info("=" * 60)

    app.run(debug=DEBUG, host='0.0.0.0', port=PORT)
