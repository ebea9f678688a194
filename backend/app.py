import logging
import os
from datetime import datetime
from pathlib import Path

import click
import orjson
from dotenv import load_dotenv
from flask import Flask, Response, current_app, jsonify, request
from flask_cors import CORS

from analytics import (
    DAY_NAMES,
    DEFAULT_TOP_LIMIT,
    calculate_stats,
    filter_by_time_period,
    format_time_ago,
    format_timestamp,
    generate_heatmap_data,
    get_hourly_play_counts,
    get_latest_entry,
    get_top_artists,
    get_top_songs,
)
from data_loader import DataLoader, write_manifest

load_dotenv()

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 50
TIMELINE_DAYS = 7


class InvalidQuery(ValueError):
    """Raised for malformed query string parameters."""
    pass


def json_response(payload, status=200):
    """Serialize dataclass reports with orjson."""
    return Response(orjson.dumps(payload), status=status, mimetype='application/json')


def int_arg(name, default):
    value = request.args.get(name)
    if value is None or value == '':
        return default
    try:
        return int(value)
    except ValueError:
        raise InvalidQuery(f"Query parameter '{name}' must be an integer")


def get_loader() -> DataLoader:
    return current_app.extensions['play_loader']


def load_period_entries(now):
    """All entries plus the subset selected by ?period=."""
    _, entries = get_loader().load_all_data()
    period = request.args.get('period', 'all')
    return entries, filter_by_time_period(entries, period, now)


def create_app(data_dir=None):
    app = Flask(__name__)

    # CORS configuration
    allowed_origins = os.getenv('ALLOWED_ORIGINS', '*').split(',')
    CORS(app, origins=allowed_origins)

    data_dir = Path(data_dir or os.getenv('DATA_DIR', 'data'))
    app.extensions['play_loader'] = DataLoader(data_dir)

    @app.errorhandler(InvalidQuery)
    def invalid_query(e):
        return jsonify({"error": str(e)}), 400

    @app.route('/health', methods=['GET'])
    def health():
        return jsonify({"status": "ok"})

    @app.route('/stats', methods=['GET'])
    def stats():
        now = datetime.now().astimezone()
        entries, filtered = load_period_entries(now)

        if not entries:
            return jsonify({"error": "No data available"}), 404

        return json_response(calculate_stats(filtered, now))

    @app.route('/top/songs', methods=['GET'])
    def top_songs():
        limit = int_arg('limit', DEFAULT_TOP_LIMIT)
        _, filtered = load_period_entries(datetime.now().astimezone())
        return json_response(get_top_songs(filtered, limit))

    @app.route('/top/artists', methods=['GET'])
    def top_artists():
        limit = int_arg('limit', DEFAULT_TOP_LIMIT)
        _, filtered = load_period_entries(datetime.now().astimezone())
        return json_response(get_top_artists(filtered, limit))

    @app.route('/timeline', methods=['GET'])
    def timeline():
        days = int_arg('days', TIMELINE_DAYS)
        _, entries = get_loader().load_all_data()
        return json_response(get_hourly_play_counts(entries, days))

    @app.route('/heatmap', methods=['GET'])
    def heatmap():
        _, filtered = load_period_entries(datetime.now().astimezone())
        return json_response({
            "days": DAY_NAMES,
            "matrix": generate_heatmap_data(filtered)
        })

    @app.route('/now-playing', methods=['GET'])
    def now_playing():
        now = datetime.now().astimezone()
        _, filtered = load_period_entries(now)

        latest = get_latest_entry(filtered)
        if latest is None:
            return json_response({"entry": None})

        return json_response({
            "entry": latest,
            "time_ago": format_time_ago(latest.ts, now),
            "played_at": format_timestamp(latest.ts)
        })

    @app.route('/history', methods=['GET'])
    def history():
        limit = int_arg('limit', HISTORY_LIMIT)
        _, filtered = load_period_entries(datetime.now().astimezone())

        # Most recent first
        recent = list(filtered[-limit:])[::-1] if limit > 0 else []
        return json_response([
            {
                "artist": entry.artist,
                "song": entry.song,
                "ts": entry.ts,
                "played_at": format_timestamp(entry.ts)
            }
            for entry in recent
        ])

    @app.route('/refresh', methods=['POST'])
    def refresh():
        get_loader().clear_cache()
        return jsonify({"status": "ok"})

    @app.cli.command('manifest')
    @click.argument('directory', required=False)
    def manifest_command(directory):
        """Regenerate manifest.json for the data directory."""
        target = Path(directory) if directory else get_loader().data_dir
        manifest = write_manifest(target)
        click.echo(f"Generated {target / 'manifest.json'} ({len(manifest.files)} files)")

    return app


app = create_app()


if __name__ == '__main__':
    logging.basicConfig(level=os.getenv('LOG_LEVEL', 'INFO'))
    app.run(debug=os.getenv('FLASK_ENV') == 'development', port=5000)
