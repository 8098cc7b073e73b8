#!/usr/bin/env python3
"""
mirrorsync  —  Mirror a local directory onto an SFTP server
===========================================================

Subcommands:
  init       Create a .mirrorsync config file in the current directory.
  sync       Mirror the local tree, then keep watching for changes.
  check      Test the connection with the current settings.
  configure  Enter or correct the connection settings interactively.
  status     Show the resolved profile.

Run 'mirrorsync <subcommand> --help' for more details.
"""
import argparse
import sys
import time
from pathlib import Path

IGNORE_TEMPLATE = """# Paths that are never mirrored (dotfiles, node_modules, out and
# __pycache__ are always skipped)
**/*.log
**/*.swp
**/*.pyc
temp/**
dist/**
build/**
"""


# ── helpers ──────────────────────────────────────────────────────────────────

def _open_store(args, required: bool = True):
    from mirrorsync import config as _cfg

    path = _cfg.find_project_file()
    if path is None:
        if required:
            print(f"error: no {_cfg.PROJECT_FILE} file found in this directory or any parent.",
                  file=sys.stderr)
            print("Run 'mirrorsync init' to create one.", file=sys.stderr)
            sys.exit(1)
        path = Path.cwd() / _cfg.PROJECT_FILE
    if args.verbose:
        print(f"[config] Using {path}")
    return _cfg.ConfigStore(path, args.profile or "default")


def _orchestrator(store, interactive=None):
    from mirrorsync.core.orchestrator import SyncOrchestrator
    from mirrorsync.ui import ConsoleUI

    return SyncOrchestrator(store, ConsoleUI(interactive=interactive))


# ── init ─────────────────────────────────────────────────────────────────────

def cmd_init(args):
    """Create a .mirrorsync profile file in the current directory."""
    from mirrorsync import config as _cfg

    target = Path.cwd() / _cfg.PROJECT_FILE

    if target.exists() and not args.force:
        print(f"error: {_cfg.PROJECT_FILE} already exists in {Path.cwd()}", file=sys.stderr)
        print("Use --force to overwrite.", file=sys.stderr)
        sys.exit(1)

    global_cfg = _cfg.load_global_config()
    g_defaults = global_cfg.get("defaults", {}) or {}

    local_root = str(Path(args.local or Path.cwd()).expanduser())

    remote_root = args.remote or g_defaults.get("remote_root", "")
    if not args.remote and sys.stdin.isatty():
        hint = f" [{remote_root}]" if remote_root else ""
        entered = input(f"Remote base path{hint}: ").strip()
        remote_root = entered or remote_root
    if not remote_root:
        print("error: remote path is required.", file=sys.stderr)
        sys.exit(1)

    server = args.server or g_defaults.get("server", "")
    if not args.server and sys.stdin.isatty():
        val = input(f"Server hostname [{server}]: ").strip()
        if val:
            server = val

    user = args.user or g_defaults.get("user", "")
    if not args.user and sys.stdin.isatty():
        val = input(f"SFTP user [{user}]: ").strip()
        if val:
            user = val

    try:
        port = _cfg.parse_port(args.port or g_defaults.get("port", _cfg.DEFAULT_PORT))
    except _cfg.InvalidPortError as exc:
        print(f"error: {exc}", file=sys.stderr)
        sys.exit(1)

    interval = args.interval or _cfg.DEFAULT_INTERVAL
    max_upload_size = args.max_upload_size or _cfg.DEFAULT_MAX_UPLOAD_SIZE
    profile_name = args.profile or "default"

    def _yq(value: str) -> str:
        """Wrap a string in YAML single quotes, escaping embedded single quotes."""
        return "'" + value.replace("'", "''") + "'"

    # Always use forward slashes in paths to avoid YAML backslash escape issues
    local_root_yaml = local_root.replace("\\", "/")

    lines = [
        "# .mirrorsync — mirrorsync project configuration",
        "#",
        "# profiles: list of sync profiles for this project.",
        "# Each profile has: name, server, port, user, local_root, remote_root.",
        "# Authenticate with `password:` or `ssh_key:` (run 'mirrorsync configure').",
        "profiles:",
        f"  - name: {profile_name}",
        f"    server: {_yq(server)}",
        f"    port: {port}",
        f"    user: {_yq(user)}",
        f"    local_root: {_yq(local_root_yaml)}",
        f"    remote_root: {_yq(remote_root)}",
        f"    interval: {interval}",
        f"    max_upload_size: {max_upload_size}",
    ]
    if args.ssh_key:
        lines.append(f"    ssh_key: {_yq(args.ssh_key)}")

    content = "\n".join(lines) + "\n"
    ignore_path = Path(local_root) / _cfg.IGNORE_FILE

    if args.dry_run:
        print(f"[dry-run] Would write {target}:")
        print(content)
        if not ignore_path.exists():
            print(f"[dry-run] Would write {ignore_path}:")
            print(IGNORE_TEMPLATE)
        return

    target.write_text(content, encoding="utf-8")
    print(f"Created {target}")

    if not ignore_path.exists() and ignore_path.parent.is_dir():
        ignore_path.write_text(IGNORE_TEMPLATE, encoding="utf-8")
        print(f"Created {ignore_path}")
    elif args.verbose:
        print(f"{ignore_path} already exists; not modified.")

    if args.verbose:
        print(content)


# ── sync ─────────────────────────────────────────────────────────────────────

def cmd_sync(args):
    """Mirror once, then keep the remote in step with local changes."""
    from mirrorsync.core.orchestrator import SyncState
    from mirrorsync.errors import ErrorCode, MirrorSyncError
    from mirrorsync.utils.logging import log, set_verbose

    set_verbose(args.verbose)
    store = _open_store(args)
    orch = _orchestrator(store, interactive=False if args.no_prompt else None)

    if args.once:
        try:
            missing = store.load().missing_fields()
        except MirrorSyncError as exc:
            orch.ui.error(exc.code, exc.detail)
            orch.close()
            sys.exit(1)
        if missing:
            orch.ui.error(ErrorCode.INCOMPLETE_SETTINGS, "missing: " + ", ".join(missing))
            orch.close()
            sys.exit(1)
        try:
            report = orch.with_recovery(orch.reconciler.initial_diff)
        except Exception as exc:
            orch.ui.error(ErrorCode.SYNC_ERROR, str(exc))
            sys.exit(1)
        finally:
            orch.close()
        sys.exit(1 if report.failed else 0)

    if not orch.start():
        orch.close()
        sys.exit(1)

    try:
        while orch.state is not SyncState.IDLE:
            time.sleep(1)
            store.poll()
    except KeyboardInterrupt:
        print()
        log("Interrupted by user. Stopping …")
    finally:
        orch.close()


# ── check ────────────────────────────────────────────────────────────────────

def cmd_check(args):
    """Connect with the current settings, then disconnect."""
    from mirrorsync.utils.logging import set_verbose

    set_verbose(args.verbose)
    store = _open_store(args)
    orch = _orchestrator(store, interactive=False)
    try:
        ok = orch.test_connection()
    finally:
        orch.close()
    sys.exit(0 if ok else 1)


# ── configure ────────────────────────────────────────────────────────────────

def cmd_configure(args):
    """Prompt for every connection setting and save it."""
    store = _open_store(args, required=False)
    orch = _orchestrator(store, interactive=True)
    try:
        ok = orch.configure()
    finally:
        orch.close()
    sys.exit(0 if ok else 1)


# ── status ───────────────────────────────────────────────────────────────────

def cmd_status(args):
    """Show the resolved profile."""
    from mirrorsync.errors import MirrorSyncError

    store = _open_store(args)
    try:
        cfg = store.load()
    except MirrorSyncError as exc:
        print(f"error: {exc}", file=sys.stderr)
        sys.exit(1)

    print(f"\nProfile  : {store.profile}")
    print(f"Config   : {store.path}")
    print(f"Local    : {cfg.local_root}")
    print(f"Remote   : {cfg.target}")
    print(f"Interval : {cfg.interval:g}s")
    print(f"Max size : {cfg.max_upload_size // 1024} KB")
    missing = cfg.missing_fields()
    if missing:
        print(f"\n⚠  Incomplete settings: {', '.join(missing)}")
        print("   Run 'mirrorsync configure' to fill them in.")


# ── main ─────────────────────────────────────────────────────────────────────

def main():
    """CLI entry point for mirrorsync"""
    parser = argparse.ArgumentParser(
        prog="mirrorsync",
        description="Mirror a local directory onto an SFTP server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    def _common(p):
        p.add_argument("--profile", metavar="NAME", default="default",
                       help="Profile to use (default: default)")
        p.add_argument("-v", "--verbose", action="store_true",
                       help="Show extra output")

    # ── init ──────────────────────────────────────────────────────────────────
    init_p = subparsers.add_parser(
        "init",
        help="Create a .mirrorsync config file in the current directory",
        description="Create a .mirrorsync YAML config file for this project.",
    )
    _common(init_p)
    init_p.add_argument("--local", metavar="PATH",
                        help="Local root directory (default: current directory)")
    init_p.add_argument("--remote", metavar="PATH",
                        help="Remote base path (POSIX form)")
    init_p.add_argument("--server", metavar="HOST",
                        help="Remote server hostname or IP")
    init_p.add_argument("--user", metavar="NAME",
                        help="SFTP username")
    init_p.add_argument("--port", type=int, metavar="N",
                        help="SFTP port (default: 22)")
    init_p.add_argument("--ssh-key", metavar="PATH",
                        help="Private key file to authenticate with")
    init_p.add_argument("--interval", type=float, metavar="SECONDS",
                        help="Seconds between idle sync checks (default: 10)")
    init_p.add_argument("--max-upload-size", type=int, metavar="BYTES",
                        help="Skip files larger than this (default: 20 MB)")
    init_p.add_argument("--force", action="store_true",
                        help="Overwrite existing .mirrorsync")
    init_p.add_argument("-n", "--dry-run", action="store_true",
                        help="Preview without writing files")

    # ── sync ──────────────────────────────────────────────────────────────────
    sync_p = subparsers.add_parser(
        "sync",
        help="Mirror the local tree and keep watching for changes",
        description="Run the initial diff, then push local changes as they happen.",
    )
    _common(sync_p)
    sync_p.add_argument("--once", action="store_true",
                        help="Run the initial diff only, then exit")
    sync_p.add_argument("--no-prompt", action="store_true",
                        help="Never ask for corrected settings")

    check_p = subparsers.add_parser("check", help="Test the connection settings")
    _common(check_p)

    configure_p = subparsers.add_parser("configure", help="Enter connection settings interactively")
    _common(configure_p)

    status_p = subparsers.add_parser("status", help="Show the resolved profile")
    _common(status_p)

    args = parser.parse_args()

    if args.command == "init":
        cmd_init(args)
    elif args.command == "sync":
        cmd_sync(args)
    elif args.command == "check":
        cmd_check(args)
    elif args.command == "configure":
        cmd_configure(args)
    elif args.command == "status":
        cmd_status(args)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
