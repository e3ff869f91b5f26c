"""Quart HTTP API for the RAG pipeline."""
from typing import Optional

import structlog
from pydantic import BaseModel, Field, ValidationError
from quart import Quart, jsonify, request

from ragpipe import config
from ragpipe.errors import ExternalServiceError, UnknownNamespaceError
from ragpipe.llm_client import OllamaClient, OllamaEmbedder, OllamaGenerator
from ragpipe.log import configure_logging
from ragpipe.rag.retriever import Retriever
from ragpipe.rag.store import VectorIndex

logger = structlog.get_logger()

MAX_QUERY_LENGTH = 2000


class ApiRequest(BaseModel):
    """Body of POST /api."""

    action: str
    query: Optional[str] = Field(default=None, max_length=MAX_QUERY_LENGTH)
    namespace: Optional[str] = None
    k: Optional[int] = Field(default=None, ge=1, le=50)


def build_retriever(client: Optional[OllamaClient] = None) -> Retriever:
    """Build the default retriever from config, loading the saved index if any."""
    client = client or OllamaClient()

    if config.INDEX_PATH.exists():
        index = VectorIndex.load(config.INDEX_PATH)
    else:
        logger.warning("no_index_found_starting_empty", path=str(config.INDEX_PATH))
        index = VectorIndex()

    return Retriever(
        embedder=OllamaEmbedder(client),
        index=index,
        generator=OllamaGenerator(client),
    )


def create_app(
    retriever: Optional[Retriever] = None,
    client: Optional[OllamaClient] = None,
) -> Quart:
    """Create the API application.

    Args:
        retriever: Retriever to serve (built from config at startup if not provided)
        client: Ollama client used by the readiness probe
    """
    app = Quart(__name__)
    client = client or OllamaClient()
    state = {"retriever": retriever}

    @app.before_serving
    async def startup():
        if state["retriever"] is None:
            state["retriever"] = build_retriever(client)
        logger.info("api_started", version=config.API_VERSION)

    @app.after_request
    async def add_cors_headers(response):
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type"
        return response

    @app.route("/api", methods=["GET", "POST", "OPTIONS"])
    async def api():
        """Health check (GET) and action dispatch (POST).

        Expects JSON body for POST:
        {
            "action": "health" | "query",
            "query": "question text",     // required for "query"
            "namespace": "optional",
            "k": 3                        // optional
        }
        """
        if request.method == "OPTIONS":
            return "", 200

        if request.method == "GET":
            return jsonify({
                "status": "ok",
                "message": "RAG API is running",
                "version": config.API_VERSION,
            })

        data = await request.get_json(silent=True)
        if not isinstance(data, dict) or not data.get("action"):
            return jsonify({"error": "Missing required field: action"}), 400

        try:
            body = ApiRequest.model_validate(data)
        except ValidationError as e:
            return jsonify({
                "error": "Invalid request body",
                "details": e.errors(include_url=False, include_context=False),
            }), 400

        if body.action == "health":
            return jsonify({"status": "ok", "message": "RAG API is running"})

        if body.action == "query":
            return await handle_query(body)

        return jsonify({"error": f"Unknown action: {body.action}"}), 400

    async def handle_query(body: ApiRequest):
        query = (body.query or "").strip()
        if not query:
            return jsonify({"error": "Missing required field: query"}), 400

        retriever = state["retriever"]
        if retriever is None:
            return jsonify({"error": "Service not ready"}), 503

        logger.info("query_request_received", query_length=len(query), namespace=body.namespace)

        try:
            answer = await retriever.ask(query, namespace=body.namespace, k=body.k)
        except UnknownNamespaceError as e:
            return jsonify({"error": str(e)}), 404
        except ExternalServiceError as e:
            logger.error("query_external_failure", error=str(e))
            return jsonify({"error": "Model service unavailable"}), 502

        return jsonify({
            "query": query,
            "answer": answer.text,
            "used_context": answer.used_context,
            "sources": [
                {
                    "id": result.id,
                    "similarity": round(result.similarity, 4),
                    "content_preview": result.content[:200] + "..."
                    if len(result.content) > 200
                    else result.content,
                }
                for result in answer.sources
            ],
        })

    @app.route("/health/live")
    async def health_live():
        """Liveness probe - check if app is running."""
        return jsonify({"status": "alive"}), 200

    @app.route("/health/ready")
    async def health_ready():
        """Readiness probe - check that Ollama is reachable and models exist."""
        checks = {
            "status": "healthy",
            "ollama": False,
            "models": False,
        }

        try:
            models = await client.list_models()
            checks["ollama"] = True

            missing = [
                name
                for name in (config.CHAT_MODEL, config.EMBEDDING_MODEL)
                if name not in models
            ]
            if missing:
                checks["status"] = "unhealthy"
                checks["error"] = f"Missing models: {', '.join(missing)}"
            else:
                checks["models"] = True

            status_code = 200 if checks["status"] == "healthy" else 503
            return jsonify(checks), status_code

        except Exception as e:
            logger.error("health_check_failed", error=str(e))
            checks["status"] = "unhealthy"
            checks["error"] = str(e)
            return jsonify(checks), 503

    @app.errorhandler(404)
    async def not_found(error):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(405)
    async def method_not_allowed(error):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(500)
    async def internal_error(error):
        logger.error("internal_server_error", error=str(error))
        return jsonify({"error": "Internal server error"}), 500

    return app


if __name__ == "__main__":
    configure_logging()
    create_app().run(host="0.0.0.0", port=5000, debug=True)
