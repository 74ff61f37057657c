import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict
from datetime import datetime, timezone

from flask import Flask, g, jsonify, request
from flask_cors import CORS

from .aggregator import LiveDataAggregator
from .behavior import SessionRegistry
from .catalog import Catalog
from .config import Config, config, configure_logging
from .errors import CityNotFoundError
from .models import UserPreferences, utcnow
from .personalization import PersonalizationEngine
from .request_handler import RequestHandler, make_cache
from .sources import default_sources

logger = logging.getLogger(__name__)

SESSION_HEADER = "X-Session-Id"
DEFAULT_SESSION = "anonymous"


def _paginate(items, page: int, limit: int):
    page = max(1, page)
    limit = max(1, min(limit, 100))
    total = len(items)
    pages = max(1, (total + limit - 1) // limit)
    start = (page - 1) * limit
    return items[start:start + limit], {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": pages,
        "next_page": page + 1 if page < pages else None,
        "prev_page": page - 1 if page > 1 else None
    }


def create_app(catalog: Catalog = None, sources=None, registry: SessionRegistry = None,
               cfg: Config = None, clock=utcnow) -> Flask:
    """Build the Flask app; every collaborator can be injected for tests"""
    cfg = cfg or config
    catalog = catalog if catalog is not None else Catalog.load(cfg.CATALOG_FILE)
    handler = None
    if sources is None:
        handler = RequestHandler(cfg)
        sources = default_sources(cfg, handler)
    if registry is None:
        registry = SessionRegistry(cache=make_cache(cfg) if cfg.USE_PERSISTENT_CACHE else None, clock=clock,
                                   max_sessions=cfg.MAX_SESSIONS)
    executor = ThreadPoolExecutor(max_workers=cfg.MAX_CONCURRENT_REQUESTS)

    app = Flask(__name__)
    CORS(app)
    app.config["CATALOG"] = catalog
    app.config["REGISTRY"] = registry

    # -------------------- HELPERS --------------------
    def current_store():
        if "store" not in g:
            session_id = request.headers.get(SESSION_HEADER, DEFAULT_SESSION).strip() or DEFAULT_SESSION
            g.store = registry.get(session_id)
        return g.store

    def current_engine():
        return PersonalizationEngine(catalog, current_store(), cfg=cfg, clock=clock)

    def suggestions_for(city_id: str):
        matches = catalog.search(city_id.replace("-", " ")) or catalog.trending(5)
        return [c.id for c in matches[:5]]

    def json_body():
        return request.get_json(silent=True) or {}

    async def load_live(city):
        aggregator = LiveDataAggregator(sources, cfg=cfg, executor=executor)
        aggregator.start(city)
        try:
            bundle = await aggregator.wait(cfg.LIVE_DATA_TIMEOUT)
            return bundle, dict(aggregator.fetch_states.value)
        finally:
            aggregator.teardown()

    # -------------------- ROUTES --------------------
    @app.route('/')
    def home():
        return jsonify({
            "name": "TravelStory API",
            "version": "1.0.0",
            "status": "operational",
            "endpoints": {
                "health": "/api/health",
                "cities": "/api/cities",
                "discover": "/api/discover",
                "city_details": "/api/cities/<city_id>",
                "live_data": "/api/cities/<city_id>/live",
                "similar": "/api/cities/<city_id>/similar",
                "me": "/api/me",
                "greeting": "/api/me/greeting",
                "recommendations": "/api/me/recommendations",
                "visibility": "/api/me/visibility"
            }
        })

    @app.route('/api/health')
    def health():
        return jsonify({
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "catalog_size": len(catalog),
            "sessions": len(registry),
            "sources": [s.name for s in sources],
            "performance": handler.get_performance_stats() if handler else {},
            "active_threads": threading.active_count(),
            "configuration": {
                "cache_ttl": cfg.CACHE_TTL,
                "persistent_cache": cfg.USE_PERSISTENT_CACHE,
                "live_data_timeout": cfg.LIVE_DATA_TIMEOUT
            }
        })

    @app.route('/api/cities')
    def list_cities():
        page = request.args.get('page', 1, type=int)
        limit = request.args.get('limit', 20, type=int)
        continent = request.args.get('continent', type=str)
        tag = request.args.get('tag', type=str)
        query = request.args.get('q', '', type=str).strip()
        sort = request.args.get('sort', 'popularity', type=str)

        cities = catalog.search(query) if query else catalog.all()
        if continent:
            cities = [c for c in cities if c.continent.lower() == continent.lower()]
        if tag:
            cities = [c for c in cities if tag.lower() in c.tags]
        if not query or "sort" in request.args:
            cities = catalog.sort(cities, sort)

        page_items, pagination = _paginate(cities, page, limit)
        return jsonify({
            "success": True,
            "data": [c.to_dict() for c in page_items],
            "pagination": pagination,
            "continents": catalog.continents()
        })

    @app.route('/api/discover')
    def discover():
        return jsonify({
            "success": True,
            "data": {
                "trending": [c.to_dict() for c in catalog.trending()],
                "budget_friendly": [c.to_dict() for c in catalog.budget_friendly()],
                "emerging": [c.to_dict() for c in catalog.emerging_destinations()]
            }
        })

    @app.route('/api/cities/<city_id>')
    def get_city(city_id):
        city = catalog.get(city_id)
        store = current_store()
        record = store.record_visit(city.id)
        engine = current_engine()
        gem = catalog.hidden_gem_info(city)
        return jsonify({
            "success": True,
            "data": {
                "city": city.to_dict(),
                "saved": store.is_saved(city.id),
                "visit_count": record.visit_count,
                "hidden_gem": {**asdict(gem), "is_hidden_gem": gem.is_hidden_gem},
                "similar": [s.to_dict() for s in engine.similar_cities(city.id)]
            }
        })

    @app.route('/api/cities/<city_id>/live')
    def get_live_data(city_id):
        city = catalog.get(city_id)
        bundle, states = asyncio.run(load_live(city))
        return jsonify({
            "success": True,
            "data": bundle.to_dict(),
            "fetch_states": {name: state.value for name, state in states.items()}
        })

    @app.route('/api/cities/<city_id>/similar')
    def get_similar(city_id):
        limit = request.args.get('limit', 4, type=int)
        similar = current_engine().similar_cities(city_id, limit)
        return jsonify({"success": True, "data": [s.to_dict() for s in similar]})

    @app.route('/api/cities/<city_id>/sections/<section_id>', methods=['POST'])
    def explore_section(city_id, section_id):
        catalog.get(city_id)
        recorded = current_store().record_section_explored(city_id, section_id)
        return jsonify({"success": True, "data": {"recorded": recorded}})

    @app.route('/api/cities/<city_id>/interactions', methods=['POST'])
    def log_interaction(city_id):
        catalog.get(city_id)
        body = json_body()
        if not body.get("type") or not body.get("target"):
            raise ValueError("type and target are required")
        recorded = current_store().record_interaction(city_id, body["type"], str(body["target"]))
        return jsonify({"success": True, "data": {"recorded": recorded}})

    @app.route('/api/me')
    def me():
        store = current_store()
        engine = current_engine()
        return jsonify({
            "success": True,
            "data": {
                "profile": store.profile.to_dict(),
                "saved": store.saved_cities(),
                "recent": store.recently_visited(request.args.get('recent', 5, type=int)),
                "visited_cities": store.distinct_visited_count(),
                "implicit_interests": engine.implicit_interests()
            }
        })

    @app.route('/api/me/greeting')
    def greeting():
        return jsonify({"success": True, "data": current_engine().personalized_greeting().to_dict()})

    @app.route('/api/me/recommendations')
    def recommendations():
        engine = current_engine()
        if not engine.is_personalization_eligible():
            return jsonify({"success": True, "data": {"eligible": False}})

        limit = request.args.get('limit', 6, type=int)
        return jsonify({
            "success": True,
            "data": {
                "eligible": True,
                "recommendations": [r.to_dict() for r in engine.recommendations(limit)]
            }
        })

    @app.route('/api/me/visibility')
    def visibility():
        return jsonify({"success": True, "data": current_engine().section_visibility()})

    @app.route('/api/me/saved/<city_id>', methods=['POST'])
    def toggle_saved(city_id):
        catalog.get(city_id)
        saved = current_store().toggle_saved(city_id)
        return jsonify({"success": True, "data": {"city_id": city_id, "saved": saved}})

    @app.route('/api/me/preferences', methods=['PUT'])
    def update_preferences():
        body = json_body()
        prefs = current_store().update_preferences(
            preferred_styles=body.get("preferred_styles"),
            budget_level=body.get("budget_level"),
            interests=body.get("interests"),
            avoid_crowds=body.get("avoid_crowds")
        )
        return jsonify({"success": True, "data": prefs.to_dict()})

    @app.route('/api/me/register', methods=['POST'])
    def register():
        body = json_body()
        preferences = UserPreferences.from_dict(body["preferences"]) if body.get("preferences") else None
        profile = current_store().register(body.get("name", ""), body.get("email"), preferences)
        return jsonify({"success": True, "data": profile.to_dict()})

    @app.route('/api/me/logout', methods=['POST'])
    def logout():
        profile = current_store().logout()
        return jsonify({"success": True, "data": profile.to_dict()})

    # -------------------- ERROR HANDLERS --------------------
    @app.errorhandler(CityNotFoundError)
    def city_not_found(error):
        return jsonify({
            "success": False,
            "error": "City not found",
            "suggestions": suggestions_for(error.city_id)
        }), 404

    @app.errorhandler(ValueError)
    def bad_request(error):
        return jsonify({"success": False, "error": str(error)}), 400

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"success": False, "error": "Endpoint not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({"success": False, "error": "Method not allowed"}), 405

    @app.errorhandler(500)
    def internal_error(error):
        logger.error(f"Internal server error: {error}")
        return jsonify({
            "success": False,
            "error": "Internal server error",
            "request_id": request.headers.get('X-Request-ID', 'unknown')
        }), 500

    logger.info(f"TravelStory API ready: {len(catalog)} cities, {len(sources)} live sources")
    return app


def main():
    configure_logging()
    app = create_app()
    logger.info(f"Starting TravelStory API on port {config.FLASK_PORT}")
    app.run(host='0.0.0.0', port=config.FLASK_PORT, debug=config.FLASK_DEBUG, threaded=True)


if __name__ == '__main__':
    main()
