"""
api_server.py
~~~~~~~~~~~~~

Flask-based REST API server with WebSocket support for the network builder.

This module provides endpoints for:
- Creating and editing workspaces (one network plus its text drafts each)
- Structural edits, forward passes and output heatmaps
- Importing and exporting networks as versioned JSON
- Revealing challenge solutions with animated frames via WebSockets
- Persisting networks to/from SQLite database

The server uses:
- Flask for REST API endpoints
- Flask-SocketIO for WebSocket communication
- Gevent for background reveal and cleanup tasks
- SQLite for network persistence
"""

import os
import sys
import time
import uuid
import base64
import logging
import math
from io import BytesIO
from typing import Dict, Any, Optional

import gevent
import numpy as np
from flask import Flask, request, jsonify
from flask_cors import CORS
from flask_socketio import SocketIO

# Use non-GUI backend for matplotlib (required for server environments)
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

# Local imports
from nnbuilder import codec
from nnbuilder.activations import list_activations
from nnbuilder.challenges import get_challenge, list_challenges
from nnbuilder.config import (
    CLEANUP_DAYS,
    DOMAIN,
    MAX_IMPORT_BYTES,
    REVEAL_FRAME_INTERVAL,
)
from nnbuilder.drafts import ParameterAddress
from nnbuilder.errors import InvalidMutationError
from nnbuilder.grid import Grid, is_matched, score_label
from nnbuilder.interpolate import RevealAnimation
from nnbuilder.persistence import (
    save_network,
    load_network,
    list_saved_networks,
    delete_network,
    delete_old_networks,
    get_network_metadata
)
from nnbuilder.workspace import Workspace

# ============================================================================
# LOGGING SETUP
# ============================================================================

def configure_logging() -> None:
    """
    Set up logging based on environment.

    - In production: Show fewer logs (less noise) but keep important logs
    - In development: Show more detailed logs for debugging
    """
    log_level_str = os.getenv('LOG_LEVEL', 'INFO').upper()
    log_level = getattr(logging, log_level_str, logging.INFO)
    is_production = os.getenv('FLASK_ENV') == 'production'

    # Set up basic logging format
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # In production, silence noisy third-party logs but keep our logs visible
    if is_production:
        for logger_name in ['socketio', 'engineio', 'engineio.server',
                            'socketio.server', 'werkzeug', 'matplotlib']:
            logging.getLogger(logger_name).setLevel(logging.WARNING)
        logging.getLogger('nnbuilder').setLevel(logging.INFO)
    else:
        logging.getLogger('socketio').setLevel(logging.INFO)
        logging.getLogger('engineio').setLevel(logging.INFO)
        logging.getLogger('matplotlib').setLevel(logging.WARNING)


configure_logging()
logger = logging.getLogger(__name__)

# ============================================================================
# FLASK APP SETUP
# ============================================================================

app = Flask(__name__)
CORS(app, resources={r"/*": {"origins": "*"}})  # Allow requests from any origin

is_production = os.getenv('FLASK_ENV') == 'production'

# SocketIO streams reveal frames to the client
socketio = SocketIO(
    app,
    cors_allowed_origins="*",
    async_mode='gevent',
    logger=not is_production,
    engineio_logger=not is_production,
    ping_timeout=60,
    ping_interval=25
)

# ============================================================================
# GLOBAL STATE
# ============================================================================

# Editing sessions currently in memory: {workspace_id: workspace}
active_workspaces: Dict[str, Workspace] = {}

# Running solution reveals: {workspace_id: animation}
active_reveals: Dict[str, RevealAnimation] = {}


# ============================================================================
# BACKGROUND TASKS
# ============================================================================

# Flag to ensure cleanup task only starts once
_cleanup_task_started = False


def cleanup_old_networks_task() -> None:
    """
    Background task that runs immediately on startup, then every 24 hours,
    deleting saved networks older than ``NNBUILDER_CLEANUP_DAYS`` days.
    """
    logger.info("Saved-network cleanup task started")

    while True:
        try:
            deleted_count = delete_old_networks(days=CLEANUP_DAYS)

            if deleted_count > 0:
                logger.info(f"Cleanup completed: deleted {deleted_count} network(s)")
            elif deleted_count == 0:
                logger.info("Cleanup completed: no old networks found to delete")
            else:
                logger.error("Cleanup returned error code")

            logger.info("Next cleanup scheduled in 24 hours")
            gevent.sleep(86400)

        except Exception as e:
            logger.exception(f"Error during network cleanup: {e}")
            # Wait a bit before retrying on error
            gevent.sleep(3600)
            continue


def start_cleanup_task() -> None:
    """
    Start the background cleanup task.

    Uses gevent.spawn() directly instead of socketio.start_background_task()
    so it works both when running directly and under gunicorn. Calling it
    again has no effect.
    """
    global _cleanup_task_started

    if _cleanup_task_started:
        logger.debug("Cleanup task already started, skipping")
        return

    _cleanup_task_started = True
    logger.info("Starting cleanup task (runs immediately, then every 24 hours)")
    gevent.spawn(cleanup_old_networks_task)


# Start the cleanup task when module is loaded (works with gunicorn)
start_cleanup_task()


def cancel_reveal(workspace_id: str) -> bool:
    """Stop a running reveal; the task notices on its next frame."""
    animation = active_reveals.pop(workspace_id, None)
    if animation is not None:
        logger.info(f"Cancelled reveal for workspace {workspace_id}")
    return animation is not None


def reveal_task(workspace_id: str, animation: RevealAnimation) -> None:
    """
    Push interpolated frames to the workspace until the reveal completes.

    Each frame replaces the workspace network and is emitted as
    ``reveal_frame``. The final frame is the exact solution network.
    """
    started = time.monotonic()
    frames_sent = 0

    try:
        while active_reveals.get(workspace_id) is animation:
            workspace = active_workspaces.get(workspace_id)
            if workspace is None:
                break

            elapsed = time.monotonic() - started
            frame = animation.frame_at(elapsed)
            workspace.apply_reveal_frame(frame)
            frames_sent += 1

            socketio.emit('reveal_frame', {
                'workspace_id': workspace_id,
                'progress': animation.progress(elapsed),
                'layers': codec.serialize_layers(frame)
            })

            if animation.is_finished(elapsed):
                active_reveals.pop(workspace_id, None)
                socketio.emit('reveal_complete', {
                    'workspace_id': workspace_id,
                    'frames': frames_sent,
                    'score': workspace.score()
                })
                logger.info(
                    f"Reveal finished for workspace {workspace_id} "
                    f"after {frames_sent} frame(s)"
                )
                return

            # Let gevent send the frame before computing the next one
            gevent.sleep(REVEAL_FRAME_INTERVAL)

        logger.info(f"Reveal for workspace {workspace_id} stopped early")

    except Exception as e:
        logger.exception(f"Reveal failed for workspace {workspace_id}: {e}")
        active_reveals.pop(workspace_id, None)
        socketio.emit('reveal_error', {
            'workspace_id': workspace_id,
            'error': str(e)
        })


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def workspace_state(workspace_id: str, workspace: Workspace) -> Dict[str, Any]:
    """Everything a client needs to redraw one workspace."""
    exported = workspace.export()
    score = workspace.score()

    return {
        'workspace_id': workspace_id,
        'network': exported.payload['network'] if exported.ok else None,
        'layer_sizes': workspace.network.layer_sizes(),
        'weight_count': workspace.network.count_weights(),
        'drafts': {address.key: text for address, text in workspace.drafts.items()},
        'invalid': sorted(
            address.key for address, valid in workspace.field_validity().items()
            if not valid
        ),
        'paused': workspace.is_paused,
        'output': workspace.evaluate().output,
        'challenge_id': workspace.challenge_id,
        'score': score,
        'label': score_label(score) if score is not None else None,
        'revealing': workspace_id in active_reveals
    }


def _get_workspace(workspace_id: str) -> Optional[Workspace]:
    workspace = active_workspaces.get(workspace_id)
    if workspace is None:
        logger.warning(f"Workspace not found: {workspace_id}")
    return workspace


def _int_arg(data: Dict[str, Any], key: str) -> Optional[int]:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def create_heatmap_image(grid: Grid, title: str) -> str:
    """
    Render a sampled grid as a base64-encoded PNG image.

    Args:
        grid: Sampled values, row 0 at the top of the domain
        title: Title drawn above the image

    Returns:
        Base64-encoded PNG image string
    """
    lo, hi = DOMAIN
    size = grid.size

    plt.figure(figsize=(4, 4))
    plt.imshow(
        np.asarray(grid.values).reshape(size, size),
        cmap='RdBu_r',
        vmin=grid.min,
        vmax=grid.max,
        extent=(lo, hi, lo, hi)
    )
    plt.colorbar(fraction=0.046, pad=0.04)
    plt.xlabel('x1')
    plt.ylabel('x2')
    plt.title(title)

    # Save to buffer and encode as base64
    buffer = BytesIO()
    plt.savefig(buffer, format='png', bbox_inches='tight')
    buffer.seek(0)
    img_base64 = base64.b64encode(buffer.getvalue()).decode('utf-8')
    plt.close()

    return img_base64


# ============================================================================
# API ENDPOINTS
# ============================================================================

@app.route('/api/status', methods=['GET'])
def get_status():
    """Return server status and statistics."""
    return jsonify({
        'status': 'online',
        'active_workspaces': len(active_workspaces),
        'active_reveals': len(active_reveals)
    }), 200


@app.route('/api/activations', methods=['GET'])
def get_activations():
    """List the activation functions a layer may use."""
    return jsonify({'activations': list_activations()}), 200


@app.route('/api/challenges', methods=['GET'])
def get_challenges():
    """List the challenge catalogue (without solutions)."""
    return jsonify({'challenges': list_challenges()}), 200


@app.route('/api/workspaces', methods=['POST'])
def create_workspace():
    """
    Create a new workspace.

    Request body (optional):
        {
            'challenge_id': 'absolute_value',  # enter challenge mode
            'saved_id': 'my_network'           # start from a saved network
        }

    Returns:
        JSON with the workspace state
    """
    data = request.get_json(silent=True) or {}
    challenge_id = data.get('challenge_id')
    saved_id = data.get('saved_id')

    if challenge_id is not None and get_challenge(challenge_id) is None:
        return jsonify({'error': f'Unknown challenge: {challenge_id}'}), 400

    workspace = Workspace()
    if saved_id is not None:
        saved = load_network(saved_id)
        if saved is None:
            return jsonify({'error': 'Saved network not found'}), 404
        network, input_values = saved
        workspace = Workspace(network=network, input_values=input_values)

    workspace.load_challenge(challenge_id)

    workspace_id = str(uuid.uuid4())
    active_workspaces[workspace_id] = workspace
    logger.info(
        f"Created workspace {workspace_id} with architecture "
        f"{workspace.network.layer_sizes()}, challenge={challenge_id}"
    )

    return jsonify(workspace_state(workspace_id, workspace)), 201


@app.route('/api/workspaces/<workspace_id>', methods=['GET'])
def get_workspace(workspace_id: str):
    """Return the full state of a workspace."""
    workspace = _get_workspace(workspace_id)
    if workspace is None:
        return jsonify({'error': 'Workspace not found'}), 404
    return jsonify(workspace_state(workspace_id, workspace)), 200


@app.route('/api/workspaces/<workspace_id>', methods=['DELETE'])
def delete_workspace(workspace_id: str):
    """Discard a workspace and stop any reveal running on it."""
    if workspace_id not in active_workspaces:
        return jsonify({'error': 'Workspace not found'}), 404

    cancel_reveal(workspace_id)
    del active_workspaces[workspace_id]
    logger.info(f"Deleted workspace {workspace_id}")

    return jsonify({'workspace_id': workspace_id, 'deleted': True}), 200


@app.route('/api/workspaces/<workspace_id>/challenge', methods=['PUT'])
def set_workspace_challenge(workspace_id: str):
    """
    Enter or leave challenge mode.

    Request body:
        {'challenge_id': 'identity'}  # or null to leave challenge mode
    """
    workspace = _get_workspace(workspace_id)
    if workspace is None:
        return jsonify({'error': 'Workspace not found'}), 404

    data = request.get_json(silent=True) or {}
    challenge_id = data.get('challenge_id')
    if challenge_id is not None and get_challenge(challenge_id) is None:
        return jsonify({'error': f'Unknown challenge: {challenge_id}'}), 400

    cancel_reveal(workspace_id)
    workspace.load_challenge(challenge_id)

    return jsonify(workspace_state(workspace_id, workspace)), 200


@app.route('/api/workspaces/<workspace_id>/edit', methods=['POST'])
def edit_parameter(workspace_id: str):
    """
    Type text into one parameter field.

    Request body:
        {'address': 'w:1:0:1', 'text': '1.5'}

    The text is always stored. The network only changes when every field
    parses; ``paused`` reports when it does not.
    """
    workspace = _get_workspace(workspace_id)
    if workspace is None:
        return jsonify({'error': 'Workspace not found'}), 404

    data = request.get_json(silent=True) or {}
    key = data.get('address')
    text = data.get('text')

    if not isinstance(key, str):
        return jsonify({'error': 'address must be a string'}), 400
    if not isinstance(text, str):
        return jsonify({'error': 'text must be a string'}), 400

    try:
        address = ParameterAddress.from_key(key)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    cancel_reveal(workspace_id)
    try:
        result = workspace.edit(address, text)
    except KeyError:
        return jsonify({'error': f'No editable parameter at {key}'}), 400

    state = workspace_state(workspace_id, workspace)
    state['applied'] = result.ok
    return jsonify(state), 200


@app.route('/api/workspaces/<workspace_id>/mutations', methods=['POST'])
def mutate_workspace(workspace_id: str):
    """
    Apply a structural edit.

    Request body:
        {
            'op': 'add_layer' | 'add_neuron' | 'remove_layer' |
                  'remove_neuron' | 'set_activation' | 'randomize' | 'reset',
            'layer': 1,             # add_neuron, remove_layer, remove_neuron, set_activation
            'neuron': 0,            # remove_neuron
            'activation': 'tanh',   # set_activation
            'seed': 42              # randomize (optional)
        }

    Returns:
        JSON with the workspace state, or 400 with the rejection reason
    """
    workspace = _get_workspace(workspace_id)
    if workspace is None:
        return jsonify({'error': 'Workspace not found'}), 404

    data = request.get_json(silent=True) or {}
    op = data.get('op')
    layer = _int_arg(data, 'layer')
    neuron = _int_arg(data, 'neuron')

    if op in ('add_neuron', 'remove_layer', 'remove_neuron', 'set_activation') and layer is None:
        return jsonify({'error': 'layer must be an integer'}), 400
    if op == 'remove_neuron' and neuron is None:
        return jsonify({'error': 'neuron must be an integer'}), 400

    cancel_reveal(workspace_id)

    if op == 'add_layer':
        result = workspace.add_hidden_layer()
    elif op == 'add_neuron':
        result = workspace.add_neuron(layer)
    elif op == 'remove_layer':
        result = workspace.remove_layer(layer)
    elif op == 'remove_neuron':
        result = workspace.remove_neuron(layer, neuron)
    elif op == 'set_activation':
        result = workspace.set_activation(layer, data.get('activation'))
    elif op == 'randomize':
        seed = _int_arg(data, 'seed')
        workspace.randomize(np.random.default_rng(seed))
        result = None
    elif op == 'reset':
        workspace.reset()
        result = None
    else:
        return jsonify({'error': f'Unknown operation: {op}'}), 400

    if result is not None and not result.ok:
        return jsonify({'error': result.error, 'limit': result.limit}), 400

    return jsonify(workspace_state(workspace_id, workspace)), 200


@app.route('/api/workspaces/<workspace_id>/forward', methods=['GET'])
def forward_pass(workspace_id: str):
    """Per-layer activations and pre-activations at the sandbox inputs."""
    workspace = _get_workspace(workspace_id)
    if workspace is None:
        return jsonify({'error': 'Workspace not found'}), 404

    trace = workspace.evaluate()
    response = trace.to_dict()
    response['input_values'] = list(workspace.input_values)
    response['output'] = trace.output
    return jsonify(response), 200


@app.route('/api/workspaces/<workspace_id>/grid', methods=['GET'])
def get_grid(workspace_id: str):
    """
    Output grid over the domain.

    In challenge mode the response also carries the target grid, the score
    and its label.
    """
    workspace = _get_workspace(workspace_id)
    if workspace is None:
        return jsonify({'error': 'Workspace not found'}), 404

    response: Dict[str, Any] = {'output': workspace.output_grid().to_dict()}

    target = workspace.target_grid()
    if target is not None:
        score = workspace.score()
        response.update({
            'target': target.to_dict(),
            'score': score,
            'label': score_label(score),
            'matched': is_matched(score)
        })

    return jsonify(response), 200


@app.route('/api/workspaces/<workspace_id>/heatmap', methods=['GET'])
def get_heatmap(workspace_id: str):
    """
    Heatmap image of the output (or, with ``?which=target``, the target).

    Returns:
        JSON with base64 PNG image and the color range
    """
    workspace = _get_workspace(workspace_id)
    if workspace is None:
        return jsonify({'error': 'Workspace not found'}), 404

    which = request.args.get('which', 'output')
    if which == 'output':
        grid = workspace.output_grid()
        title = 'Network output'
    elif which == 'target':
        grid = workspace.target_grid()
        if grid is None:
            return jsonify({'error': 'No active challenge'}), 400
        title = f"Target: {workspace.challenge_id}"
    else:
        return jsonify({'error': "which must be 'output' or 'target'"}), 400

    return jsonify({
        'image': create_heatmap_image(grid, title),
        'min': grid.min,
        'max': grid.max
    }), 200


@app.route('/api/workspaces/<workspace_id>/import', methods=['POST'])
def import_workspace(workspace_id: str):
    """
    Replace the workspace network with an imported one.

    The body is the JSON document itself, sent either as application/json
    or as raw text. Rejected imports leave the workspace unchanged.
    """
    workspace = _get_workspace(workspace_id)
    if workspace is None:
        return jsonify({'error': 'Workspace not found'}), 404

    if request.content_length is not None and request.content_length > MAX_IMPORT_BYTES:
        return jsonify({
            'error': f'File is too large (max {MAX_IMPORT_BYTES} bytes).',
            'code': 'too_large'
        }), 413

    cancel_reveal(workspace_id)
    result = workspace.import_text(request.get_data())

    if not result.ok:
        status = 413 if result.code == 'too_large' else 400
        return jsonify({'error': result.error, 'code': result.code}), status

    return jsonify(workspace_state(workspace_id, workspace)), 200


@app.route('/api/workspaces/<workspace_id>/export', methods=['GET'])
def export_workspace(workspace_id: str):
    """Return the versioned export payload of the workspace network."""
    workspace = _get_workspace(workspace_id)
    if workspace is None:
        return jsonify({'error': 'Workspace not found'}), 404

    result = workspace.export()
    if not result.ok:
        return jsonify({'error': result.error}), 500
    return jsonify(result.payload), 200


@app.route('/api/workspaces/<workspace_id>/reveal', methods=['POST'])
def start_reveal(workspace_id: str):
    """
    Start animating the workspace network into the challenge solution.

    Frames are emitted over Socket.IO as ``reveal_frame`` events followed
    by ``reveal_complete``. Any edit to the workspace cancels the reveal.
    """
    workspace = _get_workspace(workspace_id)
    if workspace is None:
        return jsonify({'error': 'Workspace not found'}), 404

    try:
        animation = workspace.begin_reveal()
    except InvalidMutationError as e:
        return jsonify({'error': str(e)}), 400

    cancel_reveal(workspace_id)
    active_reveals[workspace_id] = animation
    socketio.start_background_task(reveal_task, workspace_id, animation)
    logger.info(
        f"Started reveal for workspace {workspace_id} "
        f"({animation.duration}s to {animation.end.layer_sizes()})"
    )

    return jsonify({
        'workspace_id': workspace_id,
        'duration': animation.duration,
        'message': 'Reveal started. Connect via WebSocket for frames.'
    }), 202


@app.route('/api/workspaces/<workspace_id>/reveal', methods=['DELETE'])
def stop_reveal(workspace_id: str):
    """Cancel a running reveal, leaving the last frame in place."""
    if workspace_id not in active_workspaces:
        return jsonify({'error': 'Workspace not found'}), 404
    return jsonify({'cancelled': cancel_reveal(workspace_id)}), 200


# ============================================================================
# SAVED NETWORKS
# ============================================================================

@app.route('/api/saved', methods=['POST'])
def save_workspace():
    """
    Save a workspace network to the database.

    Request body:
        {
            'workspace_id': '...',
            'network_id': 'my_network'  # defaults to the workspace id
        }
    """
    data = request.get_json(silent=True) or {}
    workspace_id = data.get('workspace_id')
    workspace = active_workspaces.get(workspace_id) if isinstance(workspace_id, str) else None
    if workspace is None:
        return jsonify({'error': 'Workspace not found'}), 404

    network_id = data.get('network_id') or workspace_id
    if not isinstance(network_id, str):
        return jsonify({'error': 'network_id must be a string'}), 400

    saved = save_network(
        workspace.network,
        workspace.input_values,
        network_id,
        challenge_id=workspace.challenge_id,
        score=workspace.score()
    )
    if not saved:
        return jsonify({'error': 'Failed to save network'}), 500

    return jsonify(get_network_metadata(network_id)), 201


@app.route('/api/saved', methods=['GET'])
def list_saved():
    """List saved networks with their metadata."""
    return jsonify({'networks': list_saved_networks()}), 200


@app.route('/api/saved/<network_id>', methods=['GET'])
def get_saved(network_id: str):
    """Return metadata and the export payload of a saved network."""
    metadata = get_network_metadata(network_id)
    saved = load_network(network_id)
    if metadata is None or saved is None:
        return jsonify({'error': 'Saved network not found'}), 404

    network, input_values = saved
    metadata['payload'] = codec.build_export_payload(network, input_values)
    return jsonify(metadata), 200


@app.route('/api/saved/<network_id>', methods=['DELETE'])
def delete_saved(network_id: str):
    """Delete a saved network."""
    if not delete_network(network_id):
        return jsonify({'error': 'Saved network not found'}), 404
    return jsonify({'network_id': network_id, 'deleted': True}), 200


@app.route('/api/saved/cleanup', methods=['POST'])
def cleanup_saved():
    """
    Manually trigger cleanup of networks older than specified days.

    Request body (optional):
        {'days': 30}  # defaults to NNBUILDER_CLEANUP_DAYS

    Returns:
        JSON with deleted_count, days, and message
    """
    data = request.get_json(silent=True) or {}
    days = data.get('days', CLEANUP_DAYS)

    if (isinstance(days, bool) or not isinstance(days, (int, float))
            or not math.isfinite(days) or days < 0):
        return jsonify({'error': 'days must be a non-negative number'}), 400

    try:
        deleted_count = delete_old_networks(days=int(days))

        if deleted_count == -1:
            return jsonify({'error': 'Error occurred during cleanup'}), 500

        logger.info(f"Manual cleanup: deleted {deleted_count} network(s) older than {days} day(s)")

        return jsonify({
            'deleted_count': deleted_count,
            'days': days,
            'message': f'Successfully deleted {deleted_count} network(s) older than {days} day(s)'
        }), 200

    except ValueError as e:
        return jsonify({'error': str(e)}), 400


# ============================================================================
# SERVER STARTUP
# ============================================================================

if __name__ == '__main__':
    # Check if running in cloud environment
    is_cloud = bool(os.environ.get('PORT'))
    port = int(os.environ.get('PORT', 8000))

    if is_cloud:
        logger.info(f"Starting server in production mode on port {port}")
    else:
        logger.info(f"Starting server at http://localhost:{port}/")

    # Start the server with WebSocket support
    try:
        socketio.run(
            app,
            host='0.0.0.0',
            port=port,
            debug=not is_cloud,
            use_reloader=False,
            allow_unsafe_werkzeug=True
        )
    except OSError as e:
        if "Address already in use" in str(e):
            logger.error(f"Port {port} is already in use.")
            sys.exit(1)
        else:
            raise
