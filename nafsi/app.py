"""
Nafsi SDK CDN Server
Serves the pre-built widget bundle, a demo verification page and
version/health JSON. Also mounts the kiosk session API.
"""
from flask import Flask, jsonify, render_template, request, send_from_directory
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
from datetime import datetime, timezone
import logging
import os

from .config import DEFAULT_API_URL
from .kiosk import kiosk_bp
from .layer1_capture import format_bytes
from .sdk import VERSION

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)

# Configuration
PORT = int(os.environ.get('PORT', 4413))
PUBLIC_DIR = os.environ.get('NAFSI_PUBLIC_DIR', os.path.join(os.getcwd(), 'public'))
PRODUCTION = os.environ.get('NAFSI_ENV') == 'production'
BUNDLE_NAME = 'nafsi.js'
CACHE_MAX_AGE = 3600  # 1 hour

AVAILABLE_ENDPOINTS = [
    '/v1/nafsi.js',
    '/v1/nafsi.js.map',
    '/v1/verify?workflowId=xxx&clientId=yyy&apiUrl=zzz',
    '/v1/version',
    '/health',
]

app = Flask(__name__, static_folder=None)
app.config['PUBLIC_DIR'] = PUBLIC_DIR
app.config['PRODUCTION'] = PRODUCTION

# The bundle is loaded from any domain
CORS(app, resources={
    r"/v1/*": {"origins": "*", "methods": ["GET", "HEAD", "OPTIONS"]},
    r"/health": {"origins": "*", "methods": ["GET", "HEAD", "OPTIONS"]},
}, allow_headers=["Content-Type", "Accept"], supports_credentials=False)

app.register_blueprint(kiosk_bp)


def _timestamp():
    return datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')


def _v1_dir():
    return os.path.join(app.config['PUBLIC_DIR'], 'v1')


@app.after_request
def add_security_headers(response):
    response.headers['X-Content-Type-Options'] = 'nosniff'
    response.headers['X-Frame-Options'] = 'SAMEORIGIN'
    response.headers['X-XSS-Protection'] = '1; mode=block'
    return response


# ============================================================================
# Flask Routes - CDN
# ============================================================================

@app.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint for load balancers"""
    return jsonify({
        "status": "healthy",
        "version": VERSION,
        "timestamp": _timestamp()
    })


@app.route('/v1/version', methods=['GET'])
def version_info():
    """Version and location of the bundle"""
    bundle_path = os.path.join(_v1_dir(), BUNDLE_NAME)
    size = format_bytes(os.path.getsize(bundle_path)) if os.path.isfile(bundle_path) else None
    return jsonify({
        "version": VERSION,
        "sdkUrl": f"{request.host_url}v1/{BUNDLE_NAME}",
        "size": size,
        "lastUpdated": _timestamp()
    })


@app.route('/v1/verify', methods=['GET'])
def verify_page():
    """Demo page embedding the widget, configured from the query string"""
    workflow_id = request.args.get('workflowId')
    client_id = request.args.get('clientId')

    if not workflow_id or not client_id:
        return jsonify({
            "error": "Bad Request",
            "message": "Missing required parameters: workflowId and clientId are required",
            "usage": "/v1/verify?workflowId=xxx&clientId=yyy&apiUrl=zzz (apiUrl is optional)"
        }), 400

    api_url = request.args.get('apiUrl') or DEFAULT_API_URL
    logger.info(f"Serving verify page for workflow {workflow_id}")
    return render_template(
        'verify.html',
        workflow_id=workflow_id,
        client_id=client_id,
        api_url=api_url,
        bundle_url=f"/v1/{BUNDLE_NAME}",
    )


@app.route('/v1/<path:filename>', methods=['GET'])
def serve_bundle(filename):
    """Serve the bundle, its source map and other static assets"""
    logger.debug(f"Serving static file: {filename}")
    response = send_from_directory(_v1_dir(), filename, max_age=CACHE_MAX_AGE)
    if filename.endswith('.js'):
        response.headers['Content-Type'] = 'application/javascript; charset=utf-8'
        response.headers['Cache-Control'] = f'public, max-age={CACHE_MAX_AGE}'
    elif filename.endswith('.map'):
        response.headers['Content-Type'] = 'application/json; charset=utf-8'
        response.headers['Cache-Control'] = f'public, max-age={CACHE_MAX_AGE}'
    return response


# ============================================================================
# Error Handlers
# ============================================================================

@app.errorhandler(404)
def not_found(error):
    return jsonify({
        "error": "Not Found",
        "message": "The requested resource does not exist",
        "availableEndpoints": AVAILABLE_ENDPOINTS
    }), 404


@app.errorhandler(Exception)
def server_error(error):
    if isinstance(error, HTTPException):
        return jsonify({
            "error": error.name,
            "message": error.description
        }), error.code

    logger.exception(f"Server error: {error}")
    return jsonify({
        "error": "Internal Server Error",
        "message": "An error occurred" if app.config['PRODUCTION'] else str(error)
    }), 500


# ============================================================================
# Main Entry Point
# ============================================================================

def main():
    print("\n" + "=" * 60)
    print("NAFSI SDK CDN SERVER")
    print("=" * 60)
    print("\n📦 SDK available at:")
    print(f"  http://localhost:{PORT}/v1/{BUNDLE_NAME} (local)")
    print(f"  Public dir: {PUBLIC_DIR}")
    print("\n🔍 Endpoints:")
    print("  GET    /v1/nafsi.js           - SDK bundle")
    print("  GET    /v1/nafsi.js.map       - Source map")
    print("  GET    /v1/version            - Version info")
    print("  GET    /v1/verify             - Demo verification page")
    print("  GET    /health                - Health check")
    print("  POST   /kiosk/session         - Start kiosk capture session")
    print("  POST   /kiosk/session/<action> - capture | retake | continue | retry")
    print("  DELETE /kiosk/session         - Close kiosk session")
    print("  GET    /kiosk/video_feed      - MJPEG camera stream")
    print("\n💡 Integration example:")
    print(f'  <script src="http://localhost:{PORT}/v1/{BUNDLE_NAME}"></script>')
    print("\n" + "=" * 60)
    print("Server starting... Press Ctrl+C to stop")
    print("=" * 60 + "\n")

    logger.info("Flask server starting")
    app.run(host='0.0.0.0', port=PORT, threaded=True)


if __name__ == '__main__':
    main()
