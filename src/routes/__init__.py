"""
API Routes Package
==================
Shared pieces for the serverless functions defined in api.py.

Modules:
  helpers  - error type, caller auth, public profile shaping
"""
