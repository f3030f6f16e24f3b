"""Process management for a Procfile: the supervisor and its MCP front end.

The MCP server exposes tools to:
  - load_procfile:          Read a Procfile (and its .env) and reset all state
  - start/stop/restart_process, start/stop_all_processes
  - get_logs / match_count: Read and search the interleaved output
  - list_processes:         Status, color and pid of every process
  - select_tab, toggle_process_visibility, search_logs, clear_logs
  - get_active_ports / kill_port: Listeners on ports 3000-9000

Children left over from a crashed daemon are killed on startup.

Can run standalone:
    python -m procfile_runner [Procfile]
"""

from procfile_runner.process_manager.supervisor import ProcessSupervisor
from procfile_runner.process_manager.server import create_server

__all__ = ["ProcessSupervisor", "create_server"]
