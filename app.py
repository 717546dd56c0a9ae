#!/usr/bin/env python3
"""
Flask book vote: the admin uploads a spreadsheet of books, visitors spread
points across them once per vote epoch.

- Books, votes and the vote epoch live in flat JSON files (see stores.py).
- A visitor counts as having voted while their "voted" cookie ends in the
  current epoch; an admin reset bumps the epoch and every old cookie stops
  matching.
- Results, reset and the JSON results API need the admin password, either as
  an X-Admin-Password header or via the signed session set by a successful
  POST /admin.
"""
import os
import hmac
import secrets
import tempfile
import logging
from functools import wraps

from flask import (
    Flask, render_template, request, redirect, url_for,
    make_response, session, send_from_directory
)
from werkzeug.exceptions import HTTPException

from stores import BookStore, VoteStore, EpochStore
from spreadsheet import read_books, SpreadsheetError
from tally import tally, ranked

# --- Config & Constants ---
PORT = int(os.environ.get("PORT", 3000))
ADMIN_PASSWORD = os.environ.get("ADMIN_PASSWORD", "mypassword")
DATA_DIR = os.environ.get("DATA_DIR", "data")
UPLOAD_DIR = os.environ.get("UPLOAD_DIR", "uploads")
COVERS_DIR = os.environ.get("COVERS_DIR", "covers")
MAX_UPLOAD_MB = int(os.environ.get("MAX_UPLOAD_MB", 16))

VOTE_COOKIE = "voted"
VOTE_COOKIE_MAX_AGE = 365 * 24 * 3600
ADMIN_HEADER = "X-Admin-Password"
SPREADSHEET_EXTENSIONS = (".xlsx", ".xlsm", ".xls", ".csv")

ALREADY_VOTED = "You have already voted. Thank you!"
THANK_YOU = "Thank you for voting!"

app = Flask(__name__)
app.secret_key = os.getenv("FLASK_SECRET_KEY", "dev-change-me")
app.config.update(
    SESSION_COOKIE_SAMESITE="Lax",
    SESSION_COOKIE_HTTPONLY=True,
    MAX_CONTENT_LENGTH=MAX_UPLOAD_MB * 1024 * 1024,
    ADMIN_PASSWORD=ADMIN_PASSWORD,
    DATA_DIR=DATA_DIR,
    UPLOAD_DIR=UPLOAD_DIR,
    COVERS_DIR=COVERS_DIR,
)

logger = logging.getLogger("book_vote")
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
    logger.addHandler(handler)
logger.setLevel(logging.INFO)

# --- Stores ---
def book_store() -> BookStore:
    return BookStore(os.path.join(app.config["DATA_DIR"], "books.json"))

def vote_store() -> VoteStore:
    return VoteStore(os.path.join(app.config["DATA_DIR"], "votes.json"))

def epoch_store() -> EpochStore:
    return EpochStore(os.path.join(app.config["DATA_DIR"], "state.json"))

def init_storage():
    for key in ("DATA_DIR", "UPLOAD_DIR", "COVERS_DIR"):
        os.makedirs(app.config[key], exist_ok=True)
    for store in (book_store(), vote_store(), epoch_store()):
        store.ensure()

_storage_ready = set()

@app.before_request
def ensure_storage():
    # Covers flask run / WSGI servers, where __main__ below never runs.
    key = tuple(app.config[k] for k in ("DATA_DIR", "UPLOAD_DIR", "COVERS_DIR"))
    if key in _storage_ready:
        return
    try:
        init_storage()
        _storage_ready.add(key)
    except Exception:
        logger.exception("Storage init error")

# --- Cookie / epoch helpers ---
def make_cookie_value(voter_id: str, epoch: int) -> str:
    return f"{voter_id}-{epoch}"

def has_voted(cookie_value, epoch: int) -> bool:
    return bool(cookie_value) and cookie_value.endswith(f"-{epoch}")

def new_voter_id() -> str:
    return secrets.token_urlsafe(12)

# --- Admin gate ---
def _password_ok(candidate) -> bool:
    if not candidate:
        return False
    return hmac.compare_digest(candidate.encode(), app.config["ADMIN_PASSWORD"].encode())

def is_admin() -> bool:
    if _password_ok(request.headers.get(ADMIN_HEADER)):
        return True
    return bool(session.get("admin"))

def admin_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        if not is_admin():
            logger.warning("Rejected admin request to %s", request.path)
            return render_template("admin.html", message="Admin password required."), 403
        return view(*args, **kwargs)
    return wrapper

# --- Template helpers ---
@app.template_filter("cover_src")
def cover_src(cover: str) -> str:
    if not cover:
        return ""
    if cover.startswith(("http://", "https://", "/", "data:")):
        return cover
    return url_for("cover_file", filename=cover)

def _message(text: str, status: int = 200):
    return render_template("message.html", message=text), status

# --- Errors ---
@app.errorhandler(Exception)
def handle_unexpected(e):
    if isinstance(e, HTTPException):
        return e
    logger.exception("Unhandled error on %s %s", request.method, request.path)
    return _message("Something went wrong. Please try again.", 500)

# --- Voting routes ---
@app.route("/")
def index():
    epoch = epoch_store().current()
    if has_voted(request.cookies.get(VOTE_COOKIE), epoch):
        return _message(ALREADY_VOTED)
    return render_template("vote.html", books=book_store().load())

@app.route("/vote", methods=["POST"])
def vote():
    epoch = epoch_store().current()
    if has_voted(request.cookies.get(VOTE_COOKIE), epoch):
        return _message(ALREADY_VOTED)
    body = request.get_json(silent=True) if request.is_json else None
    if not isinstance(body, dict):
        body = request.form.to_dict()
    voter_id = new_voter_id()
    total = vote_store().add(voter_id, body)
    logger.info("Vote recorded epoch=%s entries=%d voters=%d", epoch, len(body), total)
    resp = make_response(render_template("message.html", message=THANK_YOU))
    secure = os.getenv("PRODUCTION", "").lower() in ("1", "true")
    resp.set_cookie(VOTE_COOKIE, make_cookie_value(voter_id, epoch),
                    max_age=VOTE_COOKIE_MAX_AGE, samesite="Lax", secure=secure, httponly=True)
    return resp

@app.route("/covers/<path:filename>")
def cover_file(filename):
    return send_from_directory(os.path.abspath(app.config["COVERS_DIR"]), filename)

# --- Admin routes ---
@app.route("/admin", methods=["GET"])
def admin():
    return render_template("admin.html", message="", is_admin=is_admin())

@app.route("/admin", methods=["POST"])
def admin_import():
    if not _password_ok(request.form.get("password")):
        logger.warning("Import rejected: wrong password")
        return render_template("admin.html", message="Wrong password!"), 403
    session["admin"] = True
    upload = request.files.get("excel")
    if upload is None or not upload.filename:
        return render_template("admin.html", message="No file uploaded.", is_admin=True), 400

    ext = os.path.splitext(upload.filename)[1].lower()
    if ext not in SPREADSHEET_EXTENSIONS:
        ext = ""
    os.makedirs(app.config["UPLOAD_DIR"], exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix="upload_", suffix=ext, dir=app.config["UPLOAD_DIR"])
    try:
        with os.fdopen(fd, "wb") as f:
            upload.save(f)
        books = read_books(tmp)
    except SpreadsheetError:
        logger.exception("Import error for %s", upload.filename)
        return render_template("admin.html", message="Error reading Excel file.", is_admin=True), 400
    finally:
        try:
            os.remove(tmp)
        except FileNotFoundError:
            pass

    book_store().save(books)
    logger.info("Imported %d books from %s", len(books), upload.filename)
    return render_template("admin.html",
                           message=f"Books imported successfully! ({len(books)} books)",
                           is_admin=True)

@app.route("/admin/logout")
def admin_logout():
    session.pop("admin", None)
    return redirect(url_for("admin"))

@app.route("/admin/results")
@admin_required
def admin_results():
    votes = vote_store().load()
    points = tally(book_store().load(), votes)
    return render_template("results.html", results=ranked(points), voters=len(votes),
                           epoch=epoch_store().current())

@app.route("/admin/reset", methods=["GET", "POST"])
@admin_required
def admin_reset():
    if request.method == "GET" and not _password_ok(request.headers.get(ADMIN_HEADER)):
        # A session cookie rides along on cross-site links, so GET needs the header.
        logger.warning("Rejected session-only GET reset")
        return render_template("admin.html", message="Reset must be submitted from the admin page.",
                               is_admin=True), 403
    vote_store().clear()
    epoch = epoch_store().bump()
    logger.info("Votes reset; vote epoch is now %d", epoch)
    return render_template("admin.html",
                           message="All votes reset! Cookies are now cleared for voting.",
                           is_admin=True)

@app.route("/api/results")
@admin_required
def api_results():
    votes = vote_store().load()
    points = tally(book_store().load(), votes)
    return {
        "epoch": epoch_store().current(),
        "voters": len(votes),
        "results": [{"title": t, "points": p} for t, p in ranked(points)],
    }

@app.route("/_internal/status")
def status():
    return {"ok": True, "books": len(book_store().load()), "voters": len(vote_store().load())}

# --- Server run ---
if __name__ == "__main__":
    try:
        init_storage()
    except Exception:
        logger.exception("Storage init error")
    if app.secret_key == "dev-change-me":
        logger.warning("Running with dev secret key. Change FLASK_SECRET_KEY for production.")
    if app.config["ADMIN_PASSWORD"] == "mypassword":
        logger.warning("Running with the default admin password. Set ADMIN_PASSWORD.")
    app.run(debug=False, use_reloader=False, host="0.0.0.0", port=PORT)
