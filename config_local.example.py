# config_local.example.py

"""
Example local overrides.

Usage:
  1) Copy this file to `config_local.py`
  2) Adjust values for your machine
  3) Never commit `config_local.py` (it is gitignored)

Prefer `.env` for anything else. Only the names below are honoured.
"""

# Run agents headless instead of opening terminal windows.
# EXECUTION_MODE = "headless"

# Start dispatching approved tasks as soon as the app boots.
# AUTO_DISPATCH = True
