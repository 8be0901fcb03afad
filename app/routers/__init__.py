# app/routers/__init__.py
