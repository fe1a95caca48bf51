#!/usr/bin/env python3
"""Deploy a Dockerized app from a Git repository to a remote Linux host.

Clones (or updates) the repository, prepares the server with Docker, Docker
Compose and Nginx, syncs the project over rsync, builds and runs it with
Docker, and puts an Nginx reverse proxy in front of it.

Prerequisites: git and rsync locally, SSH key access to the server, passwordless
sudo for the SSH user on the server.

Usage: uv run deploy-app [options]

Examples:
    uv run deploy-app
    uv run deploy-app --repo-url https://github.com/me/site.git --host 203.0.113.10
    uv run deploy-app --cleanup
"""

import base64
import re
import shlex
import shutil
import signal
import subprocess
import sys
import tempfile
import time
import traceback
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from textwrap import dedent
from typing import Annotated, Callable

import cyclopts
from fabric import Connection, Result
from rich import print
from rich.markup import escape
from rich.prompt import Prompt

SCRIPT_NAME = "deploy-app"
VERSION = "1.0.0"

app = cyclopts.App(
    name=SCRIPT_NAME,
    help="Deploy a Dockerized app from a Git repository to a remote server",
    version=f"{SCRIPT_NAME} version {VERSION}",
    version_flags=["--version", "-v"],
    help_flags=["--help", "-h"],
)

DEFAULT_BRANCH = "main"
DEFAULT_PORT = 8080
DEFAULT_SSH_KEY = "~/.ssh/id_rsa"
SSH_CONNECT_TIMEOUT = 10
SETTLE_DELAY = 15
LOG_DELAY = 5
HTTP_VERIFY_RETRIES = 6
HTTP_VERIFY_DELAY = 5

COMPOSE_FILES = ["docker-compose.yml", "docker-compose.yaml", "compose.yml", "compose.yaml"]
RSYNC_EXCLUDE = [".git", ".github", "node_modules"]

# Needs at least one character before ".git": "https://.git" does not match.
URL_PATTERN = re.compile(r"https://.+\.git")
IP_PATTERN = re.compile(r"[0-9]+\.[0-9]+\.[0-9]+\.[0-9]+")
PORT_PATTERN = re.compile(r"[0-9]+")
PROJECT_NAME_PATTERN = re.compile(r"[A-Za-z0-9][A-Za-z0-9._-]*")

LEVEL_COLORS = {
    "INFO": "blue",
    "SUCCESS": "green",
    "WARNING": "yellow",
    "ERROR": "red",
}

BANNER = dedent("""
    Automated Docker Deployment
    ===========================
""").strip()

DEFAULT_NGINX_CONF = """\
events {
    worker_connections 1024;
}

http {
    include /etc/nginx/mime.types;
    default_type application/octet-stream;

    server {
        listen 80;
        server_name localhost;
        root /usr/share/nginx/html;
        index index.html;

        location / {
            try_files $uri $uri/ /index.html;
        }

        location /health {
            return 200 "healthy\\n";
            add_header Content-Type text/plain;
        }
    }
}
"""

DEFAULT_INDEX_HTML = """\
<!DOCTYPE html>
<html>
<head>
    <title>DevOps Intern Deployment</title>
    <style>
        body { font-family: Arial, sans-serif; margin: 40px; }
        .container { text-align: center; padding: 20px; }
        .success { color: green; font-size: 24px; }
    </style>
</head>
<body>
    <div class="container">
        <h1 class="success">✅ Deployment Successful!</h1>
        <p>Your application is running via Docker & Nginx</p>
        <p>Server: <strong>$HOSTNAME</strong></p>
        <p>Timestamp: <span id="time"></span></p>
    </div>
    <script>document.getElementById('time').textContent = new Date().toString();</script>
</body>
</html>
"""

FALLBACK_DOCKERFILE = """\
FROM nginx:alpine
COPY index.html /usr/share/nginx/html/
EXPOSE 80
CMD ["nginx", "-g", "daemon off;"]
"""

_log_file: Path | None = None


def start_log(directory: Path | None = None) -> Path:
    """Creates ``deploy_<YYYYMMDDHHMMSS>.log``; every later log line is appended to it."""
    global _log_file
    stamp = datetime.now().strftime("%Y%m%d%H%M%S")
    _log_file = (directory or Path.cwd()) / f"deploy_{stamp}.log"
    _log_file.touch()
    return _log_file


def record(line: str):
    if _log_file is not None:
        with _log_file.open("a", encoding="utf-8") as f:
            f.write(f"{line}\n")


def _emit(level: str, msg: str):
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    color = LEVEL_COLORS[level]
    print(f"{timestamp} {escape(f'[{level}]')} [{color}]{escape(msg)}[/{color}]")
    record(f"{timestamp} [{level}] {msg}")


def log(msg: str):
    _emit("INFO", msg)


def success(msg: str):
    _emit("SUCCESS", msg)


def warn(msg: str):
    _emit("WARNING", msg)


def error(msg: str, *, fatal: bool = True):
    """Exits with status 1 unless ``fatal`` is False."""
    _emit("ERROR", msg)
    if fatal:
        sys.exit(1)


def log_output(text: str):
    for line in text.splitlines():
        if line.strip():
            log(line.rstrip())


def validate_url(url: str) -> bool:
    return URL_PATTERN.fullmatch(url) is not None


def validate_ip(ip: str) -> bool:
    """Dotted-quad syntax only; octets are not range checked (999.1.1.1 passes)."""
    return IP_PATTERN.fullmatch(ip) is not None


def validate_port(port: str) -> bool:
    return PORT_PATTERN.fullmatch(port) is not None and 1 <= int(port) <= 65535


def validate_not_empty(value: str) -> bool:
    return bool(value.strip())


def validate_project_name(name: str) -> bool:
    """Safe for use as a path segment and in container/image names."""
    return name not in (".", "..") and PROJECT_NAME_PATTERN.fullmatch(name) is not None


def project_name_from_url(repo_url: str) -> str:
    """Mirrors ``basename <url> .git``: ``https://host/org/foo.git`` -> ``foo``."""
    name = repo_url.rstrip("/").rsplit("/", 1)[-1]
    if name != ".git" and name.endswith(".git"):
        name = name[: -len(".git")]
    return name


def build_auth_url(repo_url: str, token: str) -> str:
    return repo_url.replace("https://", f"https://token:{token}@", 1)


def redact(text: str, secret: str) -> str:
    return text.replace(secret, "***") if secret else text


@dataclass(frozen=True)
class RemoteTarget:
    """Where an app lives: enough to reach the server and name its resources."""

    repo_url: str
    ssh_user: str
    host: str
    ssh_key: Path

    @property
    def project(self) -> str:
        return project_name_from_url(self.repo_url)

    @property
    def remote_dir(self) -> str:
        return f"/home/{self.ssh_user}/{self.project}"

    @property
    def container_name(self) -> str:
        return f"{self.project}_app"

    @property
    def image_name(self) -> str:
        # Docker image references must be lowercase; container names need not be.
        return self.container_name.lower()

    @property
    def access_url(self) -> str:
        return f"http://{self.host}"


@dataclass(frozen=True)
class DeployConfig(RemoteTarget):
    token: str = field(default="", repr=False)
    branch: str = DEFAULT_BRANCH
    port: int = DEFAULT_PORT


def check_project_name(target: RemoteTarget):
    if not validate_project_name(target.project):
        error(f"Unsafe project name derived from repository URL: {target.project!r}")


def find_compose_file(project_dir: Path) -> str | None:
    return next((name for name in COMPOSE_FILES if (project_dir / name).is_file()), None)


def has_docker_config(project_dir: Path) -> bool:
    return (project_dir / "Dockerfile").is_file() or find_compose_file(project_dir) is not None


def prompt_input(
    prompt: str,
    validator: Callable[[str], bool],
    error_msg: str,
    default: str = "",
) -> str:
    """Asks until ``validator`` accepts; empty input falls back to ``default`` when given."""
    while True:
        value = Prompt.ask(prompt, default=default, show_default=bool(default)).strip()
        record(f"{prompt}: {value}")
        if validator(value):
            return value
        error(error_msg, fatal=False)


def _resolve_input(
    value: str | None,
    prompt: str,
    validator: Callable[[str], bool],
    error_msg: str,
    default: str = "",
) -> str:
    if value is None:
        return prompt_input(prompt, validator, error_msg, default)
    if not validator(value):
        error(f"{error_msg}: {value}")
    record(f"{prompt}: {value}")
    return value


def collect_parameters(
    *,
    repo_url: str | None = None,
    branch: str | None = None,
    ssh_user: str | None = None,
    host: str | None = None,
    ssh_key: str | None = None,
    port: int | None = None,
    yes: bool = False,
) -> DeployConfig:
    """Prompts for everything not passed in, validates it, and asks for confirmation.

    The access token is always prompted for, with hidden input.
    """
    log("Collecting deployment parameters...")

    repo_url = _resolve_input(
        repo_url,
        "Enter Git Repository URL",
        validate_url,
        "Invalid Git URL format (should be https://...git)",
    )

    token = Prompt.ask("Enter Personal Access Token", password=True).strip()
    if not token:
        error("Personal Access Token cannot be empty")

    branch = _resolve_input(
        branch, "Enter Branch name", validate_not_empty, "Branch cannot be empty", DEFAULT_BRANCH
    )
    ssh_user = _resolve_input(
        ssh_user, "Enter SSH username", validate_not_empty, "Username cannot be empty"
    )
    host = _resolve_input(host, "Enter Server IP address", validate_ip, "Invalid IP address format")

    raw_key = _resolve_input(
        ssh_key, "Enter SSH key path", validate_not_empty, "SSH key path cannot be empty", DEFAULT_SSH_KEY
    )
    key_path = Path(raw_key).expanduser()
    if not key_path.is_file():
        error(f"SSH key file not found: {key_path}")

    port_value = _resolve_input(
        None if port is None else str(port),
        "Enter Application port",
        validate_port,
        "Invalid port (1-65535)",
        str(DEFAULT_PORT),
    )

    config = DeployConfig(
        repo_url=repo_url,
        ssh_user=ssh_user,
        host=host,
        ssh_key=key_path,
        token=token,
        branch=branch,
        port=int(port_value),
    )
    check_project_name(config)

    log("Deployment Summary:")
    log(f"  Repository: {config.repo_url}")
    log(f"  Branch: {config.branch}")
    log(f"  Server: {config.ssh_user}@{config.host}")
    log(f"  SSH Key: {config.ssh_key}")
    log(f"  App Port: {config.port}")

    if not yes:
        confirm = Prompt.ask("Proceed with deployment? (y/n)").strip()
        record(f"Proceed with deployment? (y/n): {confirm}")
        if confirm not in ("y", "Y"):
            log("Deployment cancelled by user")
            sys.exit(0)

    return config


def collect_cleanup_parameters(
    *,
    repo_url: str | None = None,
    ssh_user: str | None = None,
    host: str | None = None,
    ssh_key: str | None = None,
) -> RemoteTarget:
    """Unvalidated prompts; ``cleanup_deployment`` rejects what it cannot use."""

    def ask(value: str | None, prompt: str, default: str = "") -> str:
        if value is None:
            value = Prompt.ask(prompt, default=default, show_default=bool(default)).strip()
        record(f"{prompt}: {value}")
        return value

    repo_url = ask(repo_url, "Enter Git Repository URL")
    ssh_user = ask(ssh_user, "Enter SSH username")
    host = ask(host, "Enter Server IP address")
    raw_key = ask(ssh_key, "Enter SSH key path", DEFAULT_SSH_KEY) or DEFAULT_SSH_KEY
    return RemoteTarget(
        repo_url=repo_url,
        ssh_user=ssh_user,
        host=host,
        ssh_key=Path(raw_key).expanduser(),
    )


def run_git(*args: str, cwd: Path | None = None) -> subprocess.CompletedProcess:
    return subprocess.run(["git", *args], cwd=cwd, capture_output=True, text=True)


def clone_repository(config: DeployConfig, workdir: Path | None = None) -> Path:
    """Clones the branch, or updates an existing checkout.

    :return: Local project directory
    """
    project_dir = (workdir or Path.cwd()) / config.project
    auth_url = build_auth_url(config.repo_url, config.token)

    log(f"Processing repository: {config.repo_url}")

    if project_dir.is_dir():
        log("Repository exists, pulling latest changes...")
        steps = [
            (("remote", "set-url", "origin", auth_url), "Failed to set authenticated remote"),
            (("checkout", config.branch), f"Failed to checkout branch {config.branch}"),
            (("pull", "origin", config.branch), "Failed to pull latest changes"),
        ]
        for args, failure in steps:
            result = run_git(*args, cwd=project_dir)
            if result.returncode != 0:
                error(f"{failure}: {redact(result.stderr.strip(), config.token)}")
    else:
        log("Cloning repository...")
        result = run_git("clone", "-b", config.branch, auth_url, str(project_dir))
        if result.returncode != 0:
            error(f"Failed to clone repository: {redact(result.stderr.strip(), config.token)}")

    result = run_git("remote", "set-url", "origin", config.repo_url, cwd=project_dir)
    if result.returncode != 0:
        warn("Could not remove the access token from the origin remote URL")

    if not has_docker_config(project_dir):
        error("No Dockerfile or docker-compose.yml found in repository")

    success("Repository processed successfully")
    return project_dir


def connect(target: RemoteTarget) -> Connection:
    """Key-only, non-interactive connection: no agent, no password prompts."""
    return Connection(
        target.host,
        user=target.ssh_user,
        connect_timeout=SSH_CONNECT_TIMEOUT,
        connect_kwargs={
            "key_filename": str(target.ssh_key),
            "look_for_keys": False,
            "allow_agent": False,
        },
    )


def ssh(target: RemoteTarget, cmd: str) -> Result:
    with connect(target) as c:
        return c.run(cmd, hide=True, warn=True)


def ssh_script(target: RemoteTarget, script: str) -> Result:
    escaped = script.replace("'", "'\\''")
    return ssh(target, f"bash -c '{escaped}'")


def encode_file(content: str) -> str:
    """Base64 payload for ``echo ... | base64 -d``; avoids heredoc and escaping issues."""
    return base64.b64encode(content.encode()).decode()


def check_ssh_connection(target: RemoteTarget):
    log(f"Testing SSH connection to {target.ssh_user}@{target.host}...")
    try:
        result = ssh(target, "echo 'SSH connection successful'")
    except Exception as e:
        error(f"SSH connection failed: {e}")
    if result.failed:
        error(f"SSH connection failed: {result.stderr.strip()}")
    success("SSH connection established")


def build_provision_script() -> str:
    return dedent("""
        set -e

        echo "Updating system packages..."
        sudo apt-get update

        echo "Installing Docker..."
        if ! command -v docker >/dev/null 2>&1; then
            sudo apt-get install -y docker.io
            sudo systemctl enable docker
            sudo systemctl start docker
        fi

        echo "Installing Docker Compose..."
        if ! command -v docker-compose >/dev/null 2>&1; then
            sudo curl -L "https://github.com/docker/compose/releases/latest/download/docker-compose-$(uname -s)-$(uname -m)" -o /usr/local/bin/docker-compose
            sudo chmod +x /usr/local/bin/docker-compose
        fi

        echo "Installing Nginx..."
        if ! command -v nginx >/dev/null 2>&1; then
            sudo apt-get install -y nginx
            sudo systemctl enable nginx
            sudo systemctl start nginx
        fi

        echo "Adding user to docker group..."
        sudo usermod -aG docker "$USER" || true

        echo "Environment preparation completed"

        echo "Docker version:"
        docker --version
        echo "Docker Compose version:"
        docker-compose --version
        echo "Nginx version:"
        nginx -v 2>&1
    """).strip()


def prepare_remote_environment(target: RemoteTarget):
    log("Preparing remote environment...")
    result = ssh_script(target, build_provision_script())
    log_output(result.stdout)
    if result.failed:
        error(f"Failed to prepare remote environment: {result.stderr.strip()}")
    success("Remote environment prepared successfully")


def ensure_local_artifacts(project_dir: Path) -> list[str]:
    """Writes a default nginx.conf and index.html when the project lacks them.

    :return: Names of the files created
    """
    created = []
    for name, content in [("nginx.conf", DEFAULT_NGINX_CONF), ("index.html", DEFAULT_INDEX_HTML)]:
        path = project_dir / name
        if path.exists():
            continue
        warn(f"{name} not found, creating a basic one...")
        path.write_text(content, encoding="utf-8")
        success(f"Created basic {name}")
        created.append(name)
    return created


def build_rsync_cmd(
    local: Path, target: RemoteTarget, remote: str, exclude: list[str] | None = None
) -> list[str]:
    ssh_opts = (
        f"ssh -i {shlex.quote(str(target.ssh_key))} "
        "-o StrictHostKeyChecking=no "
        "-o UserKnownHostsFile=/dev/null "
        "-o ServerAliveInterval=60 "
        "-o ServerAliveCountMax=3 "
        "-o LogLevel=ERROR"
    )
    cmd = ["rsync", "-avz", "--delete", "-e", ssh_opts]
    for ex in exclude or []:
        cmd.extend(["--exclude", ex])
    cmd.extend([f"{local}/", f"{target.ssh_user}@{target.host}:{remote}/"])
    return cmd


def rsync(local: Path, target: RemoteTarget, remote: str, exclude: list[str] | None = None):
    result = subprocess.run(
        build_rsync_cmd(local, target, remote, exclude), capture_output=True, text=True
    )
    if result.returncode == 0:
        return

    if "Result too large" in result.stderr or "unexpected end of file" in result.stderr:
        log("rsync failed with large file error, falling back to tar upload...")
        _tar_upload_fallback(local, target, remote, exclude)
    else:
        error(f"Failed to transfer project files: {result.stderr.strip()}")


def _tar_upload_fallback(
    local: Path, target: RemoteTarget, remote: str, exclude: list[str] | None
):
    """Replaces the remote directory with a tar of ``local``, mirroring deletions."""
    log("Creating tar archive...")
    exclude_args = []
    for ex in exclude or []:
        exclude_args.extend(["--exclude", ex])

    with tempfile.NamedTemporaryFile(suffix=".tar.gz", delete=False) as tmp:
        tar_path = Path(tmp.name)
    try:
        result = subprocess.run(
            ["tar", "-czf", str(tar_path), "-C", str(local), *exclude_args, "."],
            capture_output=True,
            text=True,
        )
        if result.returncode != 0:
            error(f"tar creation failed: {result.stderr.strip()}")

        log("Uploading tar archive...")
        remote_tar = f"/tmp/deploy_{int(time.time())}.tar.gz"
        with connect(target) as c:
            c.put(str(tar_path), remote_tar)

        log("Extracting on remote server...")
        quoted = shlex.quote(remote)
        extract_script = dedent(f"""
            set -e
            rm -rf {quoted}
            mkdir -p {quoted}
            tar -xzf {remote_tar} -C {quoted}
            rm -f {remote_tar}
        """).strip()
        result = ssh_script(target, extract_script)
        if result.failed:
            error(f"Failed to transfer project files: {result.stderr.strip()}")
        log("Transfer complete")
    finally:
        tar_path.unlink(missing_ok=True)


def transfer_project(config: DeployConfig, project_dir: Path):
    log("Transferring project files...")
    rsync(project_dir, config, config.remote_dir, exclude=RSYNC_EXCLUDE)
    success("Project files transferred")


def build_deploy_script(config: DeployConfig) -> str:
    """Replaces any previous instance, then runs compose, the Dockerfile, or a fallback Dockerfile."""
    remote_dir = shlex.quote(config.remote_dir)
    container = config.container_name
    image = config.image_name
    compose_files = " ".join(COMPOSE_FILES)
    fallback = encode_file(FALLBACK_DOCKERFILE)
    run_container = f"docker run -d --name {container} -p {config.port}:80 {image}"

    return dedent(f"""
        set -e
        cd {remote_dir}

        COMPOSE_FILE=""
        for f in {compose_files}; do
            if [ -f "$f" ]; then
                COMPOSE_FILE="$f"
                break
            fi
        done

        echo "Stopping existing containers..."
        if [ -n "$COMPOSE_FILE" ]; then
            docker-compose -f "$COMPOSE_FILE" down 2>/dev/null || true
        fi
        docker stop {container} 2>/dev/null || true
        docker rm {container} 2>/dev/null || true

        echo "Checking for Docker configuration..."
        if [ -n "$COMPOSE_FILE" ]; then
            echo "Found $COMPOSE_FILE, using Docker Compose..."
            docker-compose -f "$COMPOSE_FILE" up -d --build
        elif [ -f Dockerfile ]; then
            echo "Found Dockerfile, building directly..."
            docker build -t {image} .
            {run_container}
        else
            echo "No Docker configuration found, creating a fallback Dockerfile..."
            echo "{fallback}" | base64 -d > Dockerfile
            docker build -t {image} .
            {run_container}
        fi
    """).strip()


def deploy_application(config: DeployConfig):
    log("Deploying application...")
    result = ssh_script(config, build_deploy_script(config))
    log_output(result.stdout)
    if result.failed:
        error(f"Failed to deploy application: {result.stderr.strip()}")
    success("Application deployed successfully")


def _diagnostic(target: RemoteTarget, cmd: str, failure: str) -> bool:
    """Runs a remote check whose failure is only worth a warning."""
    try:
        result = ssh(target, cmd)
    except Exception as e:
        warn(f"{failure}: {e}")
        return False
    if result.failed:
        warn(failure)
        return False
    log_output(result.stdout)
    return True


def collect_diagnostics(config: DeployConfig) -> bool:
    """Container status, logs and an internal HTTP probe, after the settle delay.

    :return: True if the internal probe succeeded
    """
    log("Waiting for containers to start...")
    time.sleep(SETTLE_DELAY)

    log("Checking container status...")
    _diagnostic(config, "docker ps", "Could not list containers")

    time.sleep(LOG_DELAY)
    log("Checking application health...")
    _diagnostic(
        config,
        'docker logs "$(docker ps -q | head -1)" 2>&1',
        "Could not retrieve logs",
    )

    log("Testing application internally...")
    probe = f"curl -fsS http://localhost:{config.port} || curl -fsS http://localhost:80"
    if _diagnostic(config, probe, "Application might still be starting..."):
        success("Application responded internally")
        return True
    return False


def generate_nginx_site(port: int, server_name: str) -> str:
    """Reverse proxy from port 80 to the app container on ``port``.

    Matches on ``server_name`` and never claims ``default_server``.
    """
    return dedent(f"""
        server {{
            listen 80;
            server_name {server_name};

            location / {{
                proxy_pass http://127.0.0.1:{port};
                proxy_http_version 1.1;
                proxy_set_header Upgrade $http_upgrade;
                proxy_set_header Connection 'upgrade';
                proxy_set_header Host $host;
                proxy_set_header X-Real-IP $remote_addr;
                proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;
                proxy_set_header X-Forwarded-Proto $scheme;
                proxy_cache_bypass $http_upgrade;
            }}
        }}
    """).strip()


def configure_nginx(config: DeployConfig):
    if config.port == 80:
        warn("App is published on port 80 directly, skipping Nginx reverse proxy")
        return

    log(f"Configuring Nginx reverse proxy to port {config.port}...")
    available = f"/etc/nginx/sites-available/{config.project}"
    enabled = f"/etc/nginx/sites-enabled/{config.project}"
    script = dedent(f"""
        set -e
        echo "{encode_file(generate_nginx_site(config.port, config.host))}" | base64 -d | sudo tee {available} > /dev/null
        sudo ln -sf {available} {enabled}
        sudo nginx -t
        sudo systemctl reload nginx
    """).strip()
    result = ssh_script(config, script)
    if result.failed:
        error(f"Failed to configure Nginx: {result.stderr.strip()}")
    success("Nginx configured")


def check_http_status(url: str, timeout: int = 5) -> int | None:
    """:return: HTTP status code, or None if the server could not be reached"""
    try:
        with urllib.request.urlopen(url, timeout=timeout) as response:
            return response.getcode()
    except urllib.error.HTTPError as e:
        return e.code
    except (urllib.error.URLError, OSError):
        return None


def validate_deployment(config: DeployConfig) -> bool:
    """Warns instead of failing; the app may still be starting."""
    url = f"{config.access_url}/"
    log(f"Validating deployment at {url}...")
    for i in range(HTTP_VERIFY_RETRIES):
        status = check_http_status(url)
        if status is not None and status < 400:
            success(f"Deployment reachable at {url} (HTTP {status})")
            return True
        warn(f"Cannot reach {url} ({i + 1}/{HTTP_VERIFY_RETRIES})")
        if i < HTTP_VERIFY_RETRIES - 1:
            time.sleep(HTTP_VERIFY_DELAY)
    warn(f"Deployment not reachable from here. Check the firewall on {config.host} for port 80")
    return False


def display_summary(config: DeployConfig):
    log("Deployment Summary:")
    log(f"  Application: {config.repo_url}")
    log(f"  Container: {config.container_name}")
    log(f"  Server: {config.ssh_user}@{config.host}")
    if _log_file is not None:
        log(f"  Log file: {_log_file}")
    log(f"  Timestamp: {datetime.now():%Y-%m-%d %H:%M:%S}")
    success(f"Deployment completed successfully! Access URL: {config.access_url}")


def deploy(config: DeployConfig, workdir: Path | None = None):
    project_dir = clone_repository(config, workdir)
    check_ssh_connection(config)
    prepare_remote_environment(config)
    ensure_local_artifacts(project_dir)
    transfer_project(config, project_dir)
    deploy_application(config)
    collect_diagnostics(config)
    configure_nginx(config)
    validate_deployment(config)
    display_summary(config)


def build_cleanup_script(target: RemoteTarget) -> str:
    """Every step tolerates the resource already being gone."""
    remote_dir = shlex.quote(target.remote_dir)
    container = target.container_name
    compose_files = " ".join(COMPOSE_FILES)

    return dedent(f"""
        echo "Stopping and removing containers..."
        if cd {remote_dir} 2>/dev/null; then
            for f in {compose_files}; do
                if [ -f "$f" ]; then
                    docker-compose -f "$f" down 2>/dev/null || true
                fi
            done
            cd /
        fi
        docker stop {container} 2>/dev/null || true
        docker rm {container} 2>/dev/null || true

        echo "Removing Docker images..."
        docker rmi {target.image_name} 2>/dev/null || true

        echo "Removing Nginx configuration..."
        sudo rm -f /etc/nginx/sites-available/{target.project}
        sudo rm -f /etc/nginx/sites-enabled/{target.project}
        sudo systemctl reload nginx 2>/dev/null || true

        echo "Removing project files..."
        rm -rf {remote_dir}

        echo "Cleanup completed"
    """).strip()


def cleanup_deployment(target: RemoteTarget, workdir: Path | None = None):
    log("Starting cleanup...")

    if not (target.ssh_user and target.host):
        error("Cleanup requires SSH parameters (username and server IP)")
    if not target.ssh_key.is_file():
        error(f"SSH key file not found: {target.ssh_key}")
    check_project_name(target)

    try:
        result = ssh_script(target, build_cleanup_script(target))
    except Exception as e:
        error(f"Cleanup completed with some warnings: {e}", fatal=False)
    else:
        log_output(result.stdout)
        if result.failed:
            error(f"Cleanup completed with some warnings: {result.stderr.strip()}", fatal=False)

    project_dir = (workdir or Path.cwd()) / target.project
    if project_dir.is_dir():
        log(f"Removing local directory {project_dir}...")
        shutil.rmtree(project_dir)

    success("Cleanup completed successfully")


@app.default
def main(
    *,
    cleanup: Annotated[bool, cyclopts.Parameter(name=["--cleanup", "-c"], negative="")] = False,
    repo_url: str | None = None,
    branch: str | None = None,
    ssh_user: str | None = None,
    host: str | None = None,
    ssh_key: str | None = None,
    port: int | None = None,
    yes: bool = False,
):
    """Deploy a Dockerized app from a Git repository, or remove it with --cleanup.

    Anything not given as an option is prompted for. The access token is always prompted for.

    :param cleanup: Remove deployed resources instead of deploying
    :param repo_url: Git repository URL (https://...git)
    :param branch: Branch to deploy (default: main)
    :param ssh_user: SSH username on the server
    :param host: Server IPv4 address
    :param ssh_key: SSH private key path (default: ~/.ssh/id_rsa)
    :param port: Host port to publish the app on (default: 8080)
    :param yes: Skip the confirmation prompt
    """
    start_log()

    if cleanup:
        log("Cleanup mode activated")
        target = collect_cleanup_parameters(
            repo_url=repo_url, ssh_user=ssh_user, host=host, ssh_key=ssh_key
        )
        cleanup_deployment(target)
        return

    print(f"[green]{BANNER}[/green]")
    log("Starting deployment process...")
    config = collect_parameters(
        repo_url=repo_url,
        branch=branch,
        ssh_user=ssh_user,
        host=host,
        ssh_key=ssh_key,
        port=port,
        yes=yes,
    )
    deploy(config)


def _failing_line(exc: BaseException) -> int | None:
    frames = traceback.extract_tb(exc.__traceback__)
    own = [f for f in frames if f.filename == __file__]
    frame = (own or frames or [None])[-1]
    return frame.lineno if frame else None


def _interrupt(signum, frame):
    raise KeyboardInterrupt(signal.Signals(signum).name)


def run():
    """Entry point; SIGINT, SIGTERM and unexpected exceptions all end in one ERROR line and exit 1."""
    previous = signal.signal(signal.SIGTERM, _interrupt)
    try:
        app()
    except (KeyboardInterrupt, Exception) as e:
        error(f"Script interrupted or failed at line {_failing_line(e)}: {e!r}")
    finally:
        signal.signal(signal.SIGTERM, previous)


if __name__ == "__main__":
    run()
