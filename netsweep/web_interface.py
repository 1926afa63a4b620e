"""
Flask Web Interface - JSON API over the scanners

This module is responsible for:
1. Creating and configuring the Flask application
2. Starting and stopping LAN sweeps and port range scans
3. Serving scan status and incremental event logs for polling clients
"""

# Step 1: Import standard Python libraries
import os              # For host/port configuration
from typing import Optional

# Step 2: Import Flask framework components
from flask import Flask, current_app, jsonify, request

# Step 3: Import local modules
from netsweep.config import ScanSettings
from netsweep.events import EventLog
from netsweep.interfaces import DEFAULT_SUBNET, list_interfaces, suggest_subnet
from netsweep.lan_scanner import LanScanner
from netsweep.models import Severity
from netsweep.scanner_engine import PortRangeScanner


def create_app(settings: Optional[ScanSettings] = None,
               lan_scanner: Optional[LanScanner] = None,
               port_scanner: Optional[PortRangeScanner] = None,
               event_log: Optional[EventLog] = None) -> Flask:
    """
    Step 4: Create the Flask app and attach one scanner of each kind.

    All scanners share one event log so /api/logs shows a single timeline.
    """
    app = Flask(__name__)
    settings = settings or ScanSettings.from_env()
    events = event_log or EventLog()
    app.config["EVENTS"] = events
    app.config["LAN_SCANNER"] = lan_scanner or LanScanner(settings=settings, event_log=events)
    app.config["PORT_SCANNER"] = port_scanner or PortRangeScanner(settings=settings, event_log=events)
    _register_routes(app)
    return app


def _error_since(events: EventLog, index: int):
    """Message of the newest error logged after index, if any."""
    for entry in reversed(events.entries(index)):
        if entry.severity is Severity.ERROR:
            return entry.message
    return None


def _register_routes(app: Flask):

    @app.route('/api/lan/start', methods=['POST'])
    def api_lan_start():
        """Step 5: Start a LAN sweep."""
        data = request.get_json(silent=True) or {}
        subnet = str(data.get('subnet') or suggest_subnet()).strip()
        scanner: LanScanner = current_app.config["LAN_SCANNER"]
        events: EventLog = current_app.config["EVENTS"]

        if scanner.is_scanning:
            return jsonify({'status': 'already_running'}), 409
        mark = len(events)
        if not scanner.start_lan_scan(subnet):
            return jsonify({'error': _error_since(events, mark) or 'Scan not started'}), 400
        return jsonify({'status': 'started', 'subnet': scanner.snapshot().subnet})

    @app.route('/api/lan/stop', methods=['POST'])
    def api_lan_stop():
        stopped = current_app.config["LAN_SCANNER"].stop_lan_scan()
        return jsonify({'status': 'stopped' if stopped else 'idle'})

    @app.route('/api/lan/status', methods=['GET'])
    def api_lan_status():
        """Step 6: Current sweep snapshot; ?online=1 limits hosts to live ones."""
        snapshot = current_app.config["LAN_SCANNER"].snapshot()
        payload = snapshot.to_dict()
        if request.args.get('online') in ('1', 'true'):
            payload['hosts'] = [h.to_dict() for h in snapshot.online_hosts]
        return jsonify(payload)

    @app.route('/api/ports/start', methods=['POST'])
    def api_ports_start():
        """Step 7: Start a port range scan."""
        data = request.get_json(silent=True) or {}
        scanner: PortRangeScanner = current_app.config["PORT_SCANNER"]
        events: EventLog = current_app.config["EVENTS"]

        if 'target' not in data:
            return jsonify({'error': 'Missing target host'}), 400
        try:
            start_port = int(data.get('start_port', 1))
            end_port = int(data.get('end_port', 1024))
        except (TypeError, ValueError):
            return jsonify({'error': 'Invalid port range'}), 400

        if scanner.is_scanning:
            return jsonify({'status': 'already_running'}), 409
        mark = len(events)
        if not scanner.start_port_scan(str(data['target']), start_port, end_port,
                                       data.get('protocol', 'tcp')):
            return jsonify({'error': _error_since(events, mark) or 'Scan not started'}), 400
        return jsonify({'status': 'started'})

    @app.route('/api/ports/stop', methods=['POST'])
    def api_ports_stop():
        stopped = current_app.config["PORT_SCANNER"].stop_port_scan()
        return jsonify({'status': 'stopped' if stopped else 'idle'})

    @app.route('/api/ports/status', methods=['GET'])
    def api_ports_status():
        scanner: PortRangeScanner = current_app.config["PORT_SCANNER"]
        return jsonify({
            'is_scanning': scanner.is_scanning,
            'progress': scanner.progress,
            'target': scanner.target,
            'protocol': scanner.protocol.value,
            'open_ports': list(scanner.open_ports),
        })

    @app.route('/api/logs', methods=['GET'])
    def api_logs():
        """Step 8: Events since ?since=N, plus the index to poll from next."""
        events: EventLog = current_app.config["EVENTS"]
        try:
            since = max(int(request.args.get('since', 0)), 0)
        except ValueError:
            return jsonify({'error': 'since must be an integer'}), 400
        return jsonify({
            'logs': [e.to_dict() for e in events.entries(since)],
            'logs_index': len(events),
        })

    @app.route('/api/interfaces', methods=['GET'])
    def api_interfaces():
        interfaces = list_interfaces()
        return jsonify({
            'interfaces': [i.to_dict() for i in interfaces],
            'suggested_subnet': interfaces[0].subnet if interfaces else DEFAULT_SUBNET,
        })


def run():
    """
    Run the Flask web application.
    HOST, PORT and FLASK_ENV come from the environment (or .env).
    """
    from dotenv import load_dotenv
    load_dotenv()
    app = create_app()
    debug_mode = os.environ.get('FLASK_ENV') == 'development'
    port = int(os.environ.get('PORT', 4000))
    app.run(host=os.environ.get('HOST', '127.0.0.1'), port=port, debug=debug_mode)


if __name__ == "__main__":
    run()
