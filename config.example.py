# config.example.py

"""
Documentation-only module (safe to commit).

Runtime configuration comes from environment variables (optionally via a local .env file).
Machine-specific tweaks go to config_local.py (gitignored), see config_local.example.py.
"""

ENV_VARS = {
    # App / logging
    "TASKY_APP_NAME": "App display name (default: tasky).",
    "TASKY_LOG_LEVEL": "Console logging level (default: INFO).",
    # Paths
    "TASKY_DATA_DIR": "Local data directory for logs and scratch (default: .local/tasky).",
    "TASKY_REPOSITORY_PATH": "Repository agents work in (default: current directory).",
    "TASKY_TASKS_FILE": "Task store JSON path (default: <repository>/tasks/tasks.json).",
    "TASKY_SCRATCH_DIR": "Directory for generated terminal scripts (default: <data_dir>/scratch).",
    # Execution
    "TASKY_EXECUTION_MODE": "headless | terminal | simulated | file_op (default: terminal).",
    "TASKY_SIMULATED": "Force simulated mode regardless of TASKY_EXECUTION_MODE (true/false).",
    "TASKY_CLAUDE_COMMAND": "Claude CLI executable (default: claude).",
    "TASKY_GEMINI_COMMAND": "Gemini CLI executable (default: gemini).",
    "TASKY_PROVIDER_PREFERENCE": "Comma/space separated provider order for unattended dispatch.",
    "TASKY_EXECUTION_TIMEOUT_SECONDS": "Headless run timeout (default: 300).",
    "TASKY_PROBE_TIMEOUT_SECONDS": "Availability probe timeout (default: 5).",
    "TASKY_SIMULATED_DELAY_SECONDS": "Canned delay of the simulated executors (default: 2).",
    # Engine loop
    "TASKY_AUTO_DISPATCH": "Start the unattended dispatch loop on boot (true/false).",
    "TASKY_LOOP_INTERVAL_SECONDS": "Idle pause between dispatch cycles (default: 15).",
    "TASKY_COMPLETION_POLL_SECONDS": (
        "Poll interval for tasks launched in a terminal; 0 disables waiting (default: 0)."
    ),
    "TASKY_COMPLETION_TIMEOUT_SECONDS": "Give up waiting on a launched task after this long.",
}
