"""Local watcher that rebuilds index.html, src/main.scss and src/main.js into public/ and serves it."""

__version__ = "1.0.0"
