"""
Flask web server for Historian's Bookshelf.

Routes
──────
GET    /api/state                         Full view-model snapshot (JSON)
POST   /api/search                        Submit a topic {topic, level?}
POST   /api/search/related                Follow a related topic {topic}
PUT    /api/search/level                  Change audience level {level}
GET    /api/favorites                     List favorites
POST   /api/favorites/toggle              Toggle a favorite {book}
GET    /api/lists                         List reading lists
POST   /api/lists                         Create a list {name, book?}
GET    /api/lists/<id>                    Fetch one list
PATCH  /api/lists/<id>                    Rename a list {name}
DELETE /api/lists/<id>                    Delete a list (clears selection)
POST   /api/lists/<id>/books              Add a book {book}
DELETE /api/lists/<id>/books/<title>      Remove a book
PUT    /api/selection                     Select a list {list_id | null}
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional

from dotenv import load_dotenv
from flask import Flask, jsonify, request
from pydantic import ValidationError as ModelValidationError

# Allow running as `python web/app.py` from the project root
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from config.settings import Settings
from core.bookshelf import Bookshelf
from core.errors import ValidationError
from core.models import BookRecommendation

logger = logging.getLogger(__name__)


def _json_body() -> dict:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _book_from_body(body: dict) -> Optional[BookRecommendation]:
    try:
        return BookRecommendation.model_validate(body.get("book"))
    except ModelValidationError:
        return None


def create_app(bookshelf: Optional[Bookshelf] = None) -> Flask:
    """Build the Flask app around *bookshelf* (built from the environment if omitted).

    Raises:
        ConfigurationError: If no bookshelf is given and settings are invalid.
    """
    if bookshelf is None:
        bookshelf = Bookshelf.from_settings(Settings())

    app = Flask(__name__)
    app.config["BOOKSHELF"] = bookshelf
    logger.info("Bookshelf API ready: %d favorites, %d reading lists",
                len(bookshelf.favorites), len(bookshelf.reading_lists))

    @app.errorhandler(ValidationError)
    def handle_validation_error(exc: ValidationError):
        return jsonify({"error": str(exc)}), 400

    # ── State ──────────────────────────────────────────────────────────────

    @app.route("/api/state")
    def get_state():
        return jsonify(bookshelf.snapshot())

    # ── Search ─────────────────────────────────────────────────────────────

    @app.route("/api/search", methods=["POST"])
    def search():
        """Run a search; the outcome (success or error) is part of the snapshot."""
        body = _json_body()
        topic = body.get("topic", "")
        if not isinstance(topic, str):
            return jsonify({"error": "topic must be a string"}), 400

        session = bookshelf.session
        if "level" in body:
            session.set_audience_level(body["level"], refetch=False)

        state = session.search(topic)
        if not topic.strip():
            return jsonify({"error": state.validation_message}), 400
        return jsonify(bookshelf.snapshot())

    @app.route("/api/search/related", methods=["POST"])
    def search_related():
        topic = _json_body().get("topic", "")
        if not isinstance(topic, str) or not topic.strip():
            return jsonify({"error": "Please enter a historical topic."}), 400
        bookshelf.session.select_related_topic(topic)
        return jsonify(bookshelf.snapshot())

    @app.route("/api/search/level", methods=["PUT"])
    def set_level():
        level = _json_body().get("level")
        if not isinstance(level, str):
            return jsonify({"error": "level is required"}), 400
        bookshelf.session.set_audience_level(level)
        return jsonify(bookshelf.snapshot())

    # ── Favorites ──────────────────────────────────────────────────────────

    @app.route("/api/favorites")
    def list_favorites():
        return jsonify(bookshelf.snapshot()["favorites"])

    @app.route("/api/favorites/toggle", methods=["POST"])
    def toggle_favorite():
        book = _book_from_body(_json_body())
        if book is None:
            return jsonify({"error": "a complete book is required"}), 400
        is_favorite = bookshelf.favorites.toggle_favorite(book)
        return jsonify({"title": book.title, "favorite": is_favorite})

    # ── Reading lists ──────────────────────────────────────────────────────

    @app.route("/api/lists")
    def list_reading_lists():
        return jsonify(bookshelf.snapshot()["reading_lists"])

    @app.route("/api/lists", methods=["POST"])
    def create_reading_list():
        body = _json_body()
        name = body.get("name", "")
        if not isinstance(name, str):
            return jsonify({"error": "name must be a string"}), 400

        if body.get("book") is not None:
            book = _book_from_body(body)
            if book is None:
                return jsonify({"error": "a complete book is required"}), 400
            list_id = bookshelf.create_list_with_book(name, book)
        else:
            list_id = bookshelf.reading_lists.create_list(name)
        return jsonify(_list_json(bookshelf, list_id)), 201

    @app.route("/api/lists/<list_id>")
    def get_reading_list(list_id: str):
        if bookshelf.reading_lists.get_list(list_id) is None:
            return jsonify({"error": "Not found"}), 404
        return jsonify(_list_json(bookshelf, list_id))

    @app.route("/api/lists/<list_id>", methods=["PATCH"])
    def rename_reading_list(list_id: str):
        name = _json_body().get("name", "")
        if not isinstance(name, str):
            return jsonify({"error": "name must be a string"}), 400
        if not bookshelf.reading_lists.rename_list(list_id, name):
            return jsonify({"error": "Not found"}), 404
        return jsonify(_list_json(bookshelf, list_id))

    @app.route("/api/lists/<list_id>", methods=["DELETE"])
    def delete_reading_list(list_id: str):
        deleted = bookshelf.delete_list(list_id)
        return jsonify({"deleted": list_id if deleted else None,
                        "selected_list_id": bookshelf.selected_list_id})

    @app.route("/api/lists/<list_id>/books", methods=["POST"])
    def add_book(list_id: str):
        book = _book_from_body(_json_body())
        if book is None:
            return jsonify({"error": "a complete book is required"}), 400
        added = bookshelf.reading_lists.add_book_to_list(list_id, book)
        return jsonify({"added": added})

    @app.route("/api/lists/<list_id>/books/<path:title>", methods=["DELETE"])
    def remove_book(list_id: str, title: str):
        removed = bookshelf.reading_lists.remove_book_from_list(list_id, title)
        return jsonify({"removed": removed})

    @app.route("/api/selection", methods=["PUT"])
    def select_list():
        list_id = _json_body().get("list_id")
        if list_id is not None and not isinstance(list_id, str):
            return jsonify({"error": "list_id must be a string or null"}), 400
        if not bookshelf.select_list(list_id):
            return jsonify({"error": "Not found"}), 404
        return jsonify({"selected_list_id": bookshelf.selected_list_id})

    return app


def _list_json(bookshelf: Bookshelf, list_id: str) -> dict:
    reading_list = bookshelf.reading_lists.get_list(list_id)
    return reading_list.model_dump(mode="json", by_alias=True) if reading_list else {}


# ── Entry point ────────────────────────────────────────────────────────────

if __name__ == "__main__":
    load_dotenv()
    logging.basicConfig(level=logging.INFO)
    settings = Settings()
    app = create_app(Bookshelf.from_settings(settings))
    app.run(debug=settings.debug, host="0.0.0.0", port=settings.port)
