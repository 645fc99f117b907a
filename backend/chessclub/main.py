from datetime import datetime

from flask import Blueprint, jsonify

main = Blueprint('main', __name__)


@main.route('/')
def index():
    return jsonify({'message': 'Chess club rating server is running!'})


@main.route('/api/health')
def health():
    return jsonify({'status': 'ok', 'server_time': datetime.now().isoformat()})
