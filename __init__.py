"""Finora personal finance tracker.

Flat collection of modules: a Streamlit UI (``app.py``), a FastAPI server for
the AI assistant and exports (``api_server.py``), and the shared SQLAlchemy
models and analysis code they sit on.  Run ``seed_db.py`` for a demo account.
"""
