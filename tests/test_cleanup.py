import pytest

import deploy_app


@pytest.fixture
def target(ssh_key):
    return deploy_app.RemoteTarget(
        repo_url="https://example.com/app.git",
        ssh_user="deploy",
        host="203.0.113.10",
        ssh_key=ssh_key,
    )


def test_cleanup_script_removes_every_resource(target):
    script = deploy_app.build_cleanup_script(target)
    assert "if cd /home/deploy/app 2>/dev/null; then" in script
    assert 'docker-compose -f "$f" down 2>/dev/null || true' in script
    assert "docker stop app_app 2>/dev/null || true" in script
    assert "docker rm app_app 2>/dev/null || true" in script
    assert "docker rmi app_app 2>/dev/null || true" in script
    assert "sudo rm -f /etc/nginx/sites-available/app" in script
    assert "sudo rm -f /etc/nginx/sites-enabled/app" in script
    assert "rm -rf /home/deploy/app" in script
    assert "set -e" not in script
    assert "sites-enabled/default" not in script


def test_cleanup_removes_remote_and_local_project(target, remote, tmp_path, log_file):
    checkout = tmp_path / "app"
    (checkout / "src").mkdir(parents=True)
    (checkout / "Dockerfile").write_text("FROM nginx\n")

    deploy_app.cleanup_deployment(target, tmp_path)

    assert remote.ran("docker stop app_app")
    assert remote.ran("rm -rf /home/deploy/app")
    assert not checkout.exists()
    assert log_file.read_text().rstrip().endswith("Cleanup completed successfully")


def test_cleanup_without_local_checkout(target, remote, tmp_path, log_file):
    deploy_app.cleanup_deployment(target, tmp_path)
    assert "[SUCCESS] Cleanup completed successfully" in log_file.read_text()


def test_cleanup_remote_failure_is_not_fatal(target, remote, tmp_path, log_file):
    (tmp_path / "app").mkdir()
    remote.respond("bash -c", exited=1, stderr="sudo: a password is required")

    deploy_app.cleanup_deployment(target, tmp_path)

    content = log_file.read_text()
    assert "[ERROR] Cleanup completed with some warnings" in content
    assert "[SUCCESS] Cleanup completed successfully" in content
    assert not (tmp_path / "app").exists()


def test_cleanup_unreachable_host_is_not_fatal(target, remote, tmp_path, log_file):
    remote.raise_on.append("bash -c")
    deploy_app.cleanup_deployment(target, tmp_path)
    assert "Cleanup completed with some warnings" in log_file.read_text()


def test_cleanup_requires_ssh_parameters(ssh_key, remote, tmp_path):
    target = deploy_app.RemoteTarget(
        repo_url="https://example.com/app.git", ssh_user="", host="203.0.113.10", ssh_key=ssh_key
    )
    with pytest.raises(SystemExit) as exc:
        deploy_app.cleanup_deployment(target, tmp_path)
    assert exc.value.code == 1
    assert remote.commands == []


def test_cleanup_missing_ssh_key_is_fatal(tmp_path, remote):
    target = deploy_app.RemoteTarget(
        repo_url="https://example.com/app.git",
        ssh_user="deploy",
        host="203.0.113.10",
        ssh_key=tmp_path / "missing_key",
    )
    with pytest.raises(SystemExit) as exc:
        deploy_app.cleanup_deployment(target, tmp_path)
    assert exc.value.code == 1
    assert remote.commands == []


@pytest.mark.parametrize("repo_url", ["", "https://example.com/..git", "https://example.com/a;rm.git"])
def test_cleanup_refuses_unsafe_project_names(ssh_key, remote, tmp_path, repo_url):
    target = deploy_app.RemoteTarget(repo_url=repo_url, ssh_user="deploy", host="203.0.113.10", ssh_key=ssh_key)
    with pytest.raises(SystemExit) as exc:
        deploy_app.cleanup_deployment(target, tmp_path)
    assert exc.value.code == 1
    assert remote.commands == []
    assert tmp_path.exists()
