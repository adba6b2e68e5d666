import json

import pytest

from pulsar import Event, EventDispatcher, Kernel, Package
from pulsar import app as app_context
from pulsar.core.exceptions import (
    ConfigFileNotFoundError,
    ConfigurationError,
    ExceptionHandler,
    InvalidConfigError,
    InvalidEnvironmentError,
)
from pulsar.core.http import build_request
from tests import handlers


class FirstPackage(Package):
    instances = 0

    def __init__(self):
        FirstPackage.instances += 1

    def get_definitions(self):
        return {"shared": "first", "first.only": "first"}

    def get_parameters(self):
        return {"title": "first"}

    def get_routes(self):
        return [{"name": "home", "path": "/", "handler": "tests.handlers:hello"}]

    def get_listeners(self):
        return {"user.created": ["first.listener"]}


class SecondPackage(Package):
    def get_definitions(self):
        return {"shared": "second"}

    def get_parameters(self):
        return {"title": "second"}

    def get_listeners(self):
        return {"user.created": ["second.listener"]}


class DisabledPackage(Package):
    def __init__(self):
        raise AssertionError("disabled packages must not be instantiated")


class ProjectKernel(Kernel):
    custom_environments = ("staging",)
    packages = {
        "first": FirstPackage,
        "second": SecondPackage,
        "disabled": DisabledPackage,
        "ping": handlers.PingPackage,
        "broken_listeners": handlers.BrokenListenersPackage,
    }


def log_lines(project):
    path = project / "var" / "log" / "dev.log"
    if not path.exists():
        return []
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def test_unknown_environment_fails_boot(make_project):
    project = make_project(env="qa")

    with pytest.raises(InvalidEnvironmentError) as excinfo:
        ProjectKernel(project)

    assert '"dev", "prod", "staging"' in str(excinfo.value)


def test_custom_environment_is_accepted(make_project):
    kernel = ProjectKernel(make_project(env="staging"))

    assert kernel.environment == "staging"
    assert kernel.start_time is None


def test_process_environment_wins_over_dotenv(make_project, monkeypatch):
    project = make_project(env="dev")
    monkeypatch.setenv("APP_ENV", "prod")

    assert ProjectKernel(project).environment == "prod"


def test_missing_dotenv_fails_boot(make_project):
    project = make_project()
    (project / ".env").unlink()

    with pytest.raises(ConfigFileNotFoundError):
        ProjectKernel(project)


def test_missing_config_file_fails_boot(make_project):
    with pytest.raises(ConfigFileNotFoundError):
        ProjectKernel(make_project(routes=None))


def test_unknown_package_fails_boot(make_project):
    with pytest.raises(ConfigurationError):
        ProjectKernel(make_project(packages={"nope": ["dev"]}))


def test_boot_initializes_app_and_reserved_parameters(make_project):
    project = make_project(dotenv_extra="APP_TIMEZONE=Europe/Paris\n")
    kernel = ProjectKernel(project)
    container = kernel.get_container()

    assert app_context.current() is kernel.app
    assert container.get("pulsar.environment") == "dev"
    assert container.get("pulsar.debug") is True
    assert container.get("pulsar.timezone") == "Europe/Paris"
    assert container.get("pulsar.project_dir") == str(project.resolve())
    assert container.get("pulsar.logs_dir") == str(project.resolve() / "var" / "log")
    assert str(kernel.timezone) == "Europe/Paris"


def test_middlewares_are_filtered_by_environment(make_project):
    middlewares = {
        "tests.handlers:tag_response": ["dev", "prod"],
        "prod.only": ["prod"],
        "pulsar.core.middleware:log_requests": ["dev"],
    }
    kernel = ProjectKernel(make_project(middlewares=middlewares))

    assert kernel.middleware_collection == ["tests.handlers:tag_response", "pulsar.core.middleware:log_requests"]


def test_packages_shadow_base_and_later_packages_shadow_earlier(make_project):
    FirstPackage.instances = 0
    project = make_project(
        services={"shared": {"value": "base"}, "base.only": {"value": "base"}},
        parameters={"title": "base"},
        listeners={"user.created": ["base.listener"]},
        routes=[{"name": "home", "path": "/home", "handler": "tests.handlers:ping"}],
        packages={"first": ["dev"], "second": ["dev", "prod"], "disabled": ["prod"]},
    )
    kernel = ProjectKernel(project)
    container = kernel.get_container()

    assert container.get("shared") == "second"
    assert container.get("first.only") == "first"
    assert container.get("base.only") == "base"
    assert container.get("title") == "second"
    assert FirstPackage.instances == 1

    router = container.get("router")
    assert [route.path for route in router.routes] == ["/"]

    dispatcher = container.get(EventDispatcher)
    assert dispatcher._listeners["user.created"] == ["second.listener", "first.listener", "base.listener"]


def test_unnamed_routes_on_one_path_survive_package_merge(make_project):
    project = make_project(
        routes=[
            {"path": "/users", "handler": "tests.handlers:list_users", "methods": ["GET"]},
            {"path": "/users", "handler": "tests.handlers:create_user", "methods": ["POST"]},
        ],
        packages={"ping": ["dev"]},
    )
    kernel = ProjectKernel(project)

    assert json.loads(kernel.handle(build_request("GET", "/users")).body) == ["ada"]
    assert json.loads(kernel.handle(build_request("POST", "/users")).body) == {"created": True}


def test_package_listeners_must_map_to_lists(make_project):
    with pytest.raises(InvalidConfigError) as excinfo:
        ProjectKernel(make_project(packages={"broken_listeners": ["dev"]}))

    assert "BrokenListenersPackage" in str(excinfo.value)


def test_services_config_overrides_kernel_defaults(make_project):
    project = make_project(services={
        "pulsar.core.exceptions.ExceptionHandler": {"class": "pulsar.core.exceptions:ExceptionHandler"},
    })
    kernel = ProjectKernel(project)

    assert kernel.get_container().get(ExceptionHandler).debug is False


def test_listeners_are_dispatched_through_container(make_project):
    class UserCreated(Event):
        name = "user.created"

    kernel = ProjectKernel(make_project(packages={"ping": ["dev"]}))
    event = UserCreated()

    kernel.get_container().get(EventDispatcher).dispatch(event)

    assert handlers.CALLS == [("event", event)]


def test_end_to_end_ping_in_dev(make_project):
    project = make_project(packages={"ping": ["dev"]}, middlewares={"prod.only": ["prod"]})
    kernel = ProjectKernel(project)

    response = kernel.handle(build_request("GET", "/ping"))

    assert response.status_code == 200
    assert response.body == b'{"pong":true}'
    assert kernel.start_time is not None
    assert kernel.last_request_duration_ms is not None
    assert kernel.get_container().get("greeting") == "from package"
    assert log_lines(project) == []


def test_unexpected_exception_is_logged_and_rendered(make_project):
    project = make_project(routes=[{"path": "/boom", "handler": "tests.handlers:boom"}])
    kernel = ProjectKernel(project)

    response = kernel.handle(build_request("GET", "/boom"))

    assert response.status_code == 500
    body = json.loads(response.body)
    assert body["detail"] == "Internal server error"
    assert body["exception"]["type"] == "BoomError"

    [record] = log_lines(project)
    assert record["message"] == "kaboom"
    assert record["code"] == 42
    assert record["file"].endswith("handlers.py")
    assert isinstance(record["line"], int)
    assert set(record) == {"date", "message", "code", "file", "line", "trace"}
    assert record["trace"][-1]["function"] == "boom"


def test_http_exception_is_rendered_without_logging(make_project):
    project = make_project(routes=[{"path": "/missing", "handler": "tests.handlers:missing"}])
    kernel = ProjectKernel(project)

    response = kernel.handle(build_request("GET", "/missing"))

    assert response.status_code == 404
    assert json.loads(response.body) == {"detail": "missing"}
    assert log_lines(project) == []


def test_unknown_route_is_404_and_not_logged(make_project):
    project = make_project()
    kernel = ProjectKernel(project)

    assert kernel.handle(build_request("GET", "/unknown")).status_code == 404
    assert log_lines(project) == []


def test_failing_middleware_is_rendered(make_project):
    project = make_project(
        routes=[{"path": "/ping", "handler": "tests.handlers:ping"}],
        middlewares={"tests.handlers:failing_middleware": ["dev"]},
    )
    kernel = ProjectKernel(project)

    response = kernel.handle(build_request("GET", "/ping"))

    assert response.status_code == 500
    assert len(log_lines(project)) == 1


def test_prod_hides_exception_details(make_project):
    project = make_project(env="prod", routes=[{"path": "/boom", "handler": "tests.handlers:boom"}])
    kernel = ProjectKernel(project)

    response = kernel.handle(build_request("GET", "/boom"))

    assert json.loads(response.body) == {"detail": "Internal server error"}
    assert kernel.last_request_duration_ms is None
    assert (project / "var" / "log" / "prod.log").exists()
