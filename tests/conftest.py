# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Shared fixtures: a small TypeScript/Python project on disk and fake clocks."""

import json
from pathlib import Path

import pytest

TSCONFIG = {
    "compilerOptions": {"target": "ES2020", "strict": True, "outDir": "dist"},
    "include": ["src"],
}

USER_SERVICE_TS = """\
import { Logger } from "./logger";

export interface User {
  id: number;
  name: string;
}

export type UserId = number;

export class UserService {
  private logger: Logger;

  constructor(logger: Logger) {
    this.logger = logger;
  }

  findUser(id: UserId): User | undefined {
    this.logger.log("findUser");
    return undefined;
  }
}

export function createUserService(logger: Logger): UserService {
  return new UserService(logger);
}

export const DEFAULT_USER_NAME = "guest";
"""

LOGGER_TS = """\
export class Logger {
  log(message: string): void {
    console.log(message);
  }
}

export const makeLogger = () => new Logger();
"""

APP_TS = """\
import { createUserService } from "./user-service";
import { makeLogger } from "./logger";

const service = createUserService(makeLogger());
service.findUser(1);
"""

USER_REPOSITORY_PY = '''\
class UserRepository:
    """Stores users in memory."""

    def __init__(self):
        self.users = {}

    def find_user(self, user_id):
        return self.users.get(user_id)


def build_repository():
    return UserRepository()
'''


class FakeClock:
    """Manually advanced replacement for time.monotonic."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ts_project(tmp_path: Path) -> Path:
    """TypeScript project with a Python helper and files tsconfig must skip.

    Layout:
        tsconfig.json          include: ["src"], outDir: dist
        src/user-service.ts    interface, type alias, class, function, const
        src/logger.ts          class and arrow function
        src/app.ts             usages
        dist/app.js            build output (not selected)
        node_modules/lib/index.ts (never selected)
        scripts/user_repository.py
    """
    root = tmp_path / "project"
    (root / "src").mkdir(parents=True)
    (root / "dist").mkdir()
    (root / "node_modules" / "lib").mkdir(parents=True)
    (root / "scripts").mkdir()

    (root / "tsconfig.json").write_text(json.dumps(TSCONFIG, indent=2))
    (root / "src" / "user-service.ts").write_text(USER_SERVICE_TS)
    (root / "src" / "logger.ts").write_text(LOGGER_TS)
    (root / "src" / "app.ts").write_text(APP_TS)
    (root / "dist" / "app.js").write_text("var UserService = 1;\n")
    (root / "node_modules" / "lib" / "index.ts").write_text("export class UserService {}\n")
    (root / "scripts" / "user_repository.py").write_text(USER_REPOSITORY_PY)
    return root


def make_ts_project(root: Path, file_count: int, tsconfig: dict = None) -> Path:
    """Create a project with file_count trivial TypeScript files under src/."""
    (root / "src").mkdir(parents=True, exist_ok=True)
    (root / "tsconfig.json").write_text(json.dumps(tsconfig or {"include": ["src"]}))
    for i in range(file_count):
        (root / "src" / f"module{i}.ts").write_text(f"export const value{i} = {i};\n")
    return root


@pytest.fixture
def project_factory(tmp_path: Path):
    """Return a function creating numbered projects of a given size."""
    counter = {"n": 0}

    def create(file_count: int, tsconfig: dict = None) -> Path:
        counter["n"] += 1
        return make_ts_project(tmp_path / f"project{counter['n']}", file_count, tsconfig)

    return create
