"""Flask web app: profile/state CRUD, journey events, and the map page."""

import logging

from flask import Flask, Response, jsonify, render_template_string, request

from cycling_motivator import __version_date__, get_git_hash
from cycling_motivator.config import get_settings
from cycling_motivator.export import route_to_gpx
from cycling_motivator.models import Point, Profile, state_from_bundle
from cycling_motivator.routing import fetch_route
from cycling_motivator.sessions import SessionRegistry, UserSession
from cycling_motivator.storage import StateStore, StorageError, make_store

logger = logging.getLogger(__name__)

DEFAULT_PROFILES = [
    Profile(id="user1", name="Rider 1", color="#22d3ee"),
]

app = Flask(__name__)
# Profile photos are uploaded as base64 data URLs
app.config["MAX_CONTENT_LENGTH"] = 50 * 1024 * 1024

_store: StateStore | None = None
_registry: SessionRegistry | None = None


def configure(store: StateStore, registry: SessionRegistry) -> None:
    """Install the store and session registry used by the request handlers."""
    global _store, _registry
    _store = store
    _registry = registry


def configure_from_settings(settings: dict | None = None) -> None:
    """Build the store, routing client and sessions from config files and environment."""
    settings = settings or get_settings()
    store = make_store(settings)

    def fetcher(start: Point, end: Point):
        return fetch_route(
            start,
            end,
            base_url=settings["routing_base_url"],
            profile=settings["routing_profile"],
            timeout=settings["routing_timeout"],
        )

    default_start = settings.get("default_start")
    registry = SessionRegistry(
        store,
        fetcher=fetcher,
        save_delay=settings["save_delay"],
        default_start=Point(*default_start) if default_start else None,
    )
    configure(store, registry)


def _get_store() -> StateStore:
    if _store is None:
        configure_from_settings()
    return _store


def _get_session(user_id: str) -> UserSession:
    if _registry is None:
        configure_from_settings()
    return _registry.get(user_id)


def session_view(session: UserSession) -> dict:
    """The state the page renders: phase, route, progress, marker and allowed actions."""
    controller = session.controller
    marker = controller.marker_position
    return {
        "userId": session.user_id,
        "appState": controller.phase.value,
        "route": controller.route.to_dict(),
        "progress": controller.progress.to_dict(),
        "marker": marker.to_dict() if marker else None,
        "loading": controller.is_loading,
        "notice": controller.notice.to_dict() if controller.notice else None,
        "actions": controller.available_actions(),
    }


def _error(message: str, status: int):
    return jsonify({"error": message}), status


# -- Profiles ------------------------------------------------------------------

@app.route("/api/profiles", methods=["GET"])
def get_profiles():
    """List profiles, falling back to the default profile if none are stored."""
    try:
        profiles = _get_store().list_profiles()
    except StorageError as e:
        logger.warning("Failed to load profiles: %s", e)
        profiles = []
    return jsonify([p.to_dict() for p in profiles or DEFAULT_PROFILES])


@app.route("/api/profiles", methods=["POST"])
def save_profiles():
    """Replace the stored profile list."""
    data = request.get_json(silent=True)
    if not isinstance(data, list):
        return _error("Expected a list of profiles", 400)
    try:
        profiles = [Profile.from_dict(p) for p in data]
    except ValueError as e:
        return _error(str(e), 400)
    try:
        _get_store().save_profiles(profiles)
    except StorageError as e:
        logger.warning("Failed to save profiles: %s", e)
        return _error(str(e), 502)
    return {"success": True, "profiles": [p.to_dict() for p in profiles]}


@app.route("/api/profiles/new", methods=["POST"])
def create_profile():
    data = request.get_json(silent=True) or {}
    name = str(data.get("name") or "").strip()
    if not name:
        return _error("Please enter a name", 400)
    try:
        profile = _get_store().create_profile(name, data.get("photo"))
    except StorageError as e:
        logger.warning("Failed to create profile: %s", e)
        return _error(str(e), 502)
    return profile.to_dict(), 201


# -- Raw user state ------------------------------------------------------------

@app.route("/api/users/<user_id>", methods=["GET"])
def get_user_state(user_id):
    """Return the stored {route, progress, appState} bundle."""
    try:
        return _get_store().load_user_state(user_id)
    except StorageError as e:
        logger.warning("Failed to load state for %s: %s", user_id, e)
        return _error(str(e), 502)


@app.route("/api/users/<user_id>", methods=["POST"])
def save_user_state(user_id):
    """Overwrite the stored bundle; the user's live session is reloaded from it."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return _error("Expected a state object", 400)
    try:
        state_from_bundle(data)
    except ValueError as e:
        return _error(str(e), 400)
    # The live session's pending write must not land after the posted state
    if _registry is not None:
        _registry.discard(user_id)
    try:
        _get_store().save_user_state(user_id, data)
    except StorageError as e:
        logger.warning("Failed to save state for %s: %s", user_id, e)
        return _error(str(e), 502)
    return {"success": True}


# -- Journey events ------------------------------------------------------------

@app.route("/api/users/<user_id>/session", methods=["GET"])
def get_session(user_id):
    session = _get_session(user_id)
    with session.lock:
        return session_view(session)


@app.route("/api/users/<user_id>/click", methods=["POST"])
def click(user_id):
    """Place a marker at the clicked map position."""
    data = request.get_json(silent=True) or {}
    try:
        point = Point.from_dict(data)
    except ValueError as e:
        return _error(str(e), 400)
    session = _get_session(user_id)
    with session.lock:
        session.controller.select_point(point)
    session.resolve_route()
    with session.lock:
        return session_view(session)


@app.route("/api/users/<user_id>/marker", methods=["POST"])
def marker_click(user_id):
    """Remove the clicked marker ("start" or "end")."""
    data = request.get_json(silent=True) or {}
    session = _get_session(user_id)
    with session.lock:
        session.controller.clear_marker(str(data.get("marker", "")))
    session.resolve_route()
    with session.lock:
        return session_view(session)


@app.route("/api/users/<user_id>/preview", methods=["POST"])
def preview(user_id):
    """Fetch the route preview if one is due (e.g. after a failed attempt)."""
    session = _get_session(user_id)
    session.resolve_route()
    with session.lock:
        return session_view(session)


@app.route("/api/users/<user_id>/start", methods=["POST"])
def start_journey(user_id):
    session = _get_session(user_id)
    session.start_journey()
    with session.lock:
        return session_view(session)


@app.route("/api/users/<user_id>/add", methods=["POST"])
def add_distance(user_id):
    """Add ridden kilometers; invalid amounts leave the state unchanged."""
    data = request.get_json(silent=True) or {}
    session = _get_session(user_id)
    with session.lock:
        session.controller.add_distance(data.get("km"))
        return session_view(session)


@app.route("/api/users/<user_id>/continue", methods=["POST"])
def continue_tracking(user_id):
    session = _get_session(user_id)
    with session.lock:
        session.controller.continue_tracking()
        return session_view(session)


@app.route("/api/users/<user_id>/reset", methods=["POST"])
def reset(user_id):
    session = _get_session(user_id)
    with session.lock:
        session.controller.reset()
        return session_view(session)


@app.route("/api/users/<user_id>/route.gpx")
def route_gpx(user_id):
    session = _get_session(user_id)
    with session.lock:
        route = session.controller.route
        if not route.path and not route.has_endpoints:
            return _error("No route planned yet", 404)
        xml = route_to_gpx(route)
    return Response(
        xml,
        mimetype="application/gpx+xml",
        headers={"Content-Disposition": f'attachment; filename="{user_id}-route.gpx"'},
    )


@app.route("/health")
def health():
    return {"status": "ok", "version": __version_date__, "git_hash": get_git_hash()}


HTML_TEMPLATE = """
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Cycling Motivator</title>
    <link rel="stylesheet" href="https://unpkg.com/leaflet@1.9.4/dist/leaflet.css">
    <script src="https://unpkg.com/leaflet@1.9.4/dist/leaflet.js"></script>
    <style>
        :root {
            --bg-app: #0f172a;
            --bg-surface: rgba(30, 41, 59, 0.85);
            --text-secondary: #94a3b8;
            --brand: #22d3ee;
            --brand-gradient: linear-gradient(135deg, #22d3ee 0%, #818cf8 100%);
        }
        * { box-sizing: border-box; }
        body { margin: 0; font-family: system-ui, sans-serif; background: var(--bg-app); color: white; }
        button { cursor: pointer; border: 1px solid rgba(255,255,255,0.2); border-radius: 8px;
                 background: rgba(255,255,255,0.1); color: white; padding: 0.8em 1.4em; font-size: 1rem; }
        button.primary { background: var(--brand-gradient); border: none; color: #0f172a; font-weight: bold; }
        button:disabled { opacity: 0.5; cursor: default; }
        .hidden { display: none !important; }
        #profiles { min-height: 100vh; display: flex; flex-direction: column; align-items: center; justify-content: center; gap: 40px; padding: 20px; }
        #profileGrid { display: grid; grid-template-columns: repeat(auto-fit, minmax(200px, 1fr)); gap: 24px; width: 100%; max-width: 900px; }
        .profile-card { display: flex; flex-direction: column; align-items: center; gap: 16px; padding: 30px; font-size: 1.4rem; }
        .avatar { width: 100px; height: 100px; border-radius: 50%; overflow: hidden; }
        .avatar img { width: 100%; height: 100%; object-fit: cover; }
        #map { position: absolute; inset: 0; }
        #header { position: absolute; top: 0; left: 0; right: 0; padding: 20px; z-index: 1000; display: flex;
                  justify-content: space-between; align-items: start;
                  background: linear-gradient(to bottom, rgba(15,23,42,0.9) 0%, transparent 100%); }
        #header h1 { margin: 0; font-size: 2rem; }
        #hint { margin: 4px 0 0; color: var(--text-secondary); }
        #actions { display: flex; gap: 12px; }
        #notice { position: absolute; top: 110px; left: 20px; right: 20px; max-width: 600px; margin: 0 auto; z-index: 1000;
                  background: rgba(234,179,8,0.15); border: 1px solid rgba(234,179,8,0.5); border-radius: 8px; padding: 12px; }
        #tracking { position: absolute; bottom: 40px; left: 20px; right: 20px; max-width: 600px; margin: 0 auto; z-index: 1000;
                    background: var(--bg-surface); border-radius: 16px; padding: 24px; }
        .stats { display: flex; justify-content: space-between; margin-bottom: 16px; font-size: 1.6rem; font-weight: bold; }
        .stats small { display: block; font-size: 0.9rem; color: var(--text-secondary); font-weight: normal; }
        .bar { height: 14px; background: rgba(255,255,255,0.1); border-radius: 7px; overflow: hidden; margin-bottom: 16px; }
        .bar div { height: 100%; background: var(--brand-gradient); transition: width 0.5s ease-out; }
        .add-row { display: flex; gap: 12px; }
        .add-row input { flex: 1; padding: 14px; font-size: 1.2rem; border-radius: 8px; border: 1px solid rgba(255,255,255,0.1);
                         background: rgba(0,0,0,0.2); color: white; }
        #celebration { position: fixed; inset: 0; z-index: 3000; display: flex; flex-direction: column; align-items: center;
                       justify-content: center; text-align: center; gap: 24px; padding: 40px;
                       background: linear-gradient(135deg, #0f172a 0%, #1e293b 100%); }
        #celebration h1 { font-size: 4rem; margin: 0; background: var(--brand-gradient);
                          -webkit-background-clip: text; -webkit-text-fill-color: transparent; }
        #celebration p { font-size: 1.5rem; color: var(--text-secondary); }
    </style>
</head>
<body>
    <div id="profiles">
        <h1>Who's riding today?</h1>
        <div id="profileGrid"></div>
        <div class="add-row" style="max-width: 500px; width: 100%;">
            <input id="newProfileName" type="text" placeholder="New rider name...">
            <input id="newProfilePhoto" type="file" accept="image/*" style="flex: 0;">
            <button class="primary" id="createProfile">Create</button>
        </div>
    </div>

    <div id="app" class="hidden">
        <div id="map"></div>
        <div id="header">
            <div>
                <h1>Cycling Motivator</h1>
                <p id="hint"></p>
            </div>
            <div id="actions">
                <button class="primary hidden" id="startBtn">Start journey</button>
                <button class="hidden" id="resetBtn">Reset</button>
                <a class="hidden" id="gpxLink"><button>GPX</button></a>
                <button id="switchUser" title="Switch rider">Switch rider</button>
            </div>
        </div>
        <div id="notice" class="hidden"></div>
        <div id="tracking" class="hidden">
            <div class="stats">
                <div><small>Progress</small><span id="pct">0%</span></div>
                <div><small>Distance</small><span id="km">0.0 / 0.0 km</span></div>
            </div>
            <div class="bar"><div id="barFill" style="width: 0%"></div></div>
            <div class="add-row">
                <input id="kmInput" type="number" step="0.1" min="0" placeholder="Add km...">
                <button class="primary" id="addBtn">Add</button>
            </div>
        </div>
        <div id="celebration" class="hidden">
            <h1 id="celebrationTitle"></h1>
            <p id="celebrationText"></p>
            <button class="primary" id="viewBtn">Enjoy the view</button>
            <button id="continueBtn" class="hidden">Back to the map</button>
            <button id="newRouteBtn" class="hidden">Plan a new route</button>
        </div>
    </div>

    <div style="position: fixed; bottom: 4px; right: 8px; font-size: 0.7rem; color: var(--text-secondary); z-index: 4000;">
        {{ version_date }} ({{ git_hash }})
    </div>

    <script>
        let userId = null;
        let view = null;
        let map = null;
        const layers = {start: null, end: null, line: null, rider: null};

        async function api(path, body) {
            const opts = body === undefined ? {} : {
                method: 'POST',
                headers: {'Content-Type': 'application/json'},
                body: JSON.stringify(body),
            };
            const r = await fetch(path, opts);
            return r.json();
        }

        async function loadProfiles() {
            const profiles = await api('/api/profiles');
            const grid = document.getElementById('profileGrid');
            grid.innerHTML = '';
            profiles.forEach(function(p) {
                const card = document.createElement('button');
                card.className = 'profile-card';
                const avatar = document.createElement('div');
                avatar.className = 'avatar';
                avatar.style.background = p.color;
                if (p.photo) {
                    const img = document.createElement('img');
                    img.src = p.photo;
                    avatar.appendChild(img);
                }
                const name = document.createElement('span');
                name.textContent = p.name;
                card.appendChild(avatar);
                card.appendChild(name);
                card.onclick = function() { selectUser(p.id); };
                grid.appendChild(card);
            });
        }

        function readPhoto() {
            const file = document.getElementById('newProfilePhoto').files[0];
            if (!file) return Promise.resolve(null);
            return new Promise(function(resolve) {
                const reader = new FileReader();
                reader.onloadend = function() { resolve(reader.result); };
                reader.readAsDataURL(file);
            });
        }

        document.getElementById('createProfile').onclick = async function() {
            const name = document.getElementById('newProfileName').value.trim();
            if (!name) return;
            await api('/api/profiles/new', {name: name, photo: await readPhoto()});
            document.getElementById('newProfileName').value = '';
            loadProfiles();
        };

        async function selectUser(id) {
            userId = id;
            document.getElementById('profiles').classList.add('hidden');
            document.getElementById('app').classList.remove('hidden');
            if (!map) {
                map = L.map('map').setView([48.20967, 13.48831], 12);
                L.tileLayer('https://{s}.tile.openstreetmap.org/{z}/{x}/{y}.png', {
                    attribution: '&copy; OpenStreetMap contributors'
                }).addTo(map);
                map.on('click', function(e) { send('click', {lat: e.latlng.lat, lng: e.latlng.lng}); });
            }
            render(await api('/api/users/' + encodeURIComponent(userId) + '/session'));
        }

        async function send(action, body) {
            render(await api('/api/users/' + encodeURIComponent(userId) + '/' + action, body || {}));
        }

        function clearLayer(name) {
            if (layers[name]) { map.removeLayer(layers[name]); layers[name] = null; }
        }

        function drawMarker(name, point, color) {
            clearLayer(name);
            if (!point) return;
            layers[name] = L.circleMarker([point.lat, point.lng], {radius: 10, color: color, fillOpacity: 0.9}).addTo(map);
            if (name === 'start' || name === 'end') {
                layers[name].on('click', function(e) {
                    L.DomEvent.stopPropagation(e);
                    send('marker', {marker: name});
                });
            }
        }

        function show(id, visible) {
            document.getElementById(id).classList.toggle('hidden', !visible);
        }

        function render(v) {
            view = v;
            const route = v.route, progress = v.progress, phase = v.appState;
            drawMarker('start', route.start, '#22c55e');
            drawMarker('end', route.end, '#ef4444');
            drawMarker('rider', v.marker, '#22d3ee');
            clearLayer('line');
            if (route.path.length > 0) {
                layers.line = L.polyline(route.path.map(function(p) { return [p.lat, p.lng]; }), {color: '#22d3ee', weight: 5}).addTo(map);
            } else if (route.start && route.end) {
                layers.line = L.polyline([[route.start.lat, route.start.lng], [route.end.lat, route.end.lng]],
                                         {color: '#94a3b8', dashArray: '8 8'}).addTo(map);
            }

            let hint = '';
            if (phase === 'SETUP') {
                if (!route.start) hint = 'Tap the map to set the START';
                else if (!route.end) hint = 'Tap the map to set the FINISH';
                else if (v.loading) hint = 'Calculating route...';
                else hint = 'Ready? Total distance: ' + (route.distance ? route.distance.toFixed(1) : '...') + ' km';
            } else if (phase === 'TRACKING') {
                hint = 'Keep going! Every kilometer counts.';
            }
            document.getElementById('hint').textContent = hint;

            show('startBtn', v.actions.indexOf('start_journey') >= 0);
            show('resetBtn', phase !== 'CELEBRATION' && !!(route.start || route.end || phase === 'TRACKING'));
            show('gpxLink', !!(route.start && route.end));
            document.getElementById('gpxLink').href = '/api/users/' + encodeURIComponent(userId) + '/route.gpx';
            show('notice', !!v.notice);
            document.getElementById('notice').textContent = v.notice ? v.notice.message : '';

            show('tracking', phase === 'TRACKING');
            const pct = Math.round(progress.percentage * 100);
            document.getElementById('pct').textContent = pct + '%';
            document.getElementById('barFill').style.width = pct + '%';
            document.getElementById('km').textContent =
                progress.currentKm.toFixed(1) + ' / ' + progress.totalKm.toFixed(1) + ' km';

            show('celebration', phase === 'CELEBRATION');
            if (phase === 'CELEBRATION') {
                const done = v.actions.indexOf('continue') < 0;
                document.getElementById('celebrationTitle').textContent = done ? 'GOAL REACHED!' : 'Well done!';
                document.getElementById('celebrationText').textContent = done
                    ? 'You conquered the whole ' + progress.totalKm.toFixed(1) + ' km route!'
                    : progress.currentKm.toFixed(1) + ' km done, ' +
                      (progress.totalKm - progress.currentKm).toFixed(1) + ' km to go!';
                show('continueBtn', !done);
                show('newRouteBtn', done);
            }
        }

        function openStreetView() {
            if (view && view.marker) {
                window.open('https://www.google.com/maps/@?api=1&map_action=pano&viewpoint=' +
                            view.marker.lat + ',' + view.marker.lng, '_blank');
            }
        }

        document.getElementById('startBtn').onclick = function() { send('start'); };
        document.getElementById('resetBtn').onclick = function() { send('reset'); };
        document.getElementById('newRouteBtn').onclick = function() { send('reset'); };
        document.getElementById('continueBtn').onclick = function() { send('continue'); };
        document.getElementById('viewBtn').onclick = openStreetView;
        document.getElementById('addBtn').onclick = function() {
            const input = document.getElementById('kmInput');
            send('add', {km: input.value});
            input.value = '';
        };
        document.getElementById('switchUser').onclick = function() {
            userId = null;
            document.getElementById('app').classList.add('hidden');
            document.getElementById('profiles').classList.remove('hidden');
            loadProfiles();
        };

        loadProfiles();
    </script>
</body>
</html>
"""


@app.route("/")
def index():
    return render_template_string(
        HTML_TEMPLATE,
        version_date=__version_date__,
        git_hash=get_git_hash(),
    )


def run(settings: dict) -> None:
    """Configure from settings and serve until interrupted, then flush pending writes."""
    configure_from_settings(settings)
    port = settings["port"]
    print("Starting Cycling Motivator web server...")
    print(f"Open http://localhost:{port} in your browser")
    try:
        app.run(host="0.0.0.0", port=port, debug=False)
    finally:
        _registry.flush_all()


def main():
    """Run the web server."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    run(get_settings())


if __name__ == "__main__":
    main()
