"""Tests for project manifest and lockfile readers."""

import json

import pytest

from common.errors import ManifestError
from registry.npm.lockfile_parser import (
    load_install_manifest,
    parse_package_json,
    parse_package_lock,
    parse_pnpm_lock,
)


def _write_json(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


class TestPackageLock:

    def test_v3_packages_by_install_path(self, tmp_path):
        path = _write_json(tmp_path / "package-lock.json", {
            "lockfileVersion": 3,
            "packages": {
                "": {"name": "app", "version": "1.0.0"},
                "node_modules/lodash": {"version": "4.17.21"},
                "node_modules/@types/node": {"version": "20.1.0"},
                "node_modules/a/node_modules/lodash": {"version": "3.10.1"},
                "node_modules/local": {"resolved": "packages/local", "link": True},
                "node_modules/from-git": {"version": "git+ssh://git@github.com/x/y.git#abc"},
                "packages/local": {"version": "0.0.1"},
            },
        })

        assert parse_package_lock(path) == [
            "@types/node@20.1.0",
            "lodash@3.10.1",
            "lodash@4.17.21",
        ]

    def test_v1_nested_dependencies(self, tmp_path):
        path = _write_json(tmp_path / "package-lock.json", {
            "lockfileVersion": 1,
            "dependencies": {
                "express": {
                    "version": "4.18.2",
                    "dependencies": {"debug": {"version": "2.6.9"}},
                },
                "mine": {"version": "file:../mine"},
            },
        })

        assert parse_package_lock(path) == ["debug@2.6.9", "express@4.18.2"]

    def test_malformed_json_raises(self, tmp_path):
        path = tmp_path / "package-lock.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ManifestError):
            parse_package_lock(str(path))


class TestPnpmLock:

    def test_v9_keys(self, tmp_path):
        path = tmp_path / "pnpm-lock.yaml"
        path.write_text(
            "lockfileVersion: '9.0'\n"
            "packages:\n"
            "  lodash@4.17.21:\n"
            "    resolution: {integrity: sha512-x}\n"
            "  '@babel/core@7.24.0':\n"
            "    resolution: {integrity: sha512-y}\n",
            encoding="utf-8",
        )

        assert parse_pnpm_lock(str(path)) == ["@babel/core@7.24.0", "lodash@4.17.21"]

    def test_v6_keys_drop_peer_suffix(self, tmp_path):
        path = tmp_path / "pnpm-lock.yaml"
        path.write_text(
            "lockfileVersion: '6.0'\n"
            "packages:\n"
            "  /react-dom@18.2.0(react@18.2.0):\n"
            "    dev: false\n"
            "  /react@18.2.0:\n"
            "    dev: false\n",
            encoding="utf-8",
        )

        assert parse_pnpm_lock(str(path)) == ["react-dom@18.2.0", "react@18.2.0"]

    def test_v5_slash_keys(self, tmp_path):
        path = tmp_path / "pnpm-lock.yaml"
        path.write_text(
            "lockfileVersion: 5.4\n"
            "packages:\n"
            "  /@scope/pkg/1.2.3:\n"
            "    dev: false\n"
            "  /react-dom/18.2.0_react@18.2.0:\n"
            "    dev: false\n",
            encoding="utf-8",
        )

        assert parse_pnpm_lock(str(path)) == ["@scope/pkg@1.2.3", "react-dom@18.2.0"]

    def test_invalid_yaml_raises(self, tmp_path):
        path = tmp_path / "pnpm-lock.yaml"
        path.write_text("packages: [unclosed\n", encoding="utf-8")
        with pytest.raises(ManifestError):
            parse_pnpm_lock(str(path))


class TestPackageJson:

    def test_direct_dependencies_become_specs(self, tmp_path):
        path = _write_json(tmp_path / "package.json", {
            "dependencies": {"express": "^4.18.2", "left-pad": ""},
            "devDependencies": {"jest": "29.7.0", "express": "4.0.0"},
            "optionalDependencies": {"fsevents": "~2.3.2"},
        })

        assert parse_package_json(path) == [
            "express@^4.18.2", "left-pad", "jest@29.7.0", "fsevents@~2.3.2"]

    def test_non_registry_specs_are_skipped(self, tmp_path):
        path = _write_json(tmp_path / "package.json", {
            "dependencies": {
                "alias": "npm:other@1.0.0",
                "git": "github:user/repo",
                "local": "file:../local",
                "ok": "1.0.0",
            },
        })

        assert parse_package_json(path) == ["ok@1.0.0"]


class TestLoadInstallManifest:

    def test_npm_prefers_shrinkwrap(self, tmp_path):
        _write_json(tmp_path / "npm-shrinkwrap.json", {
            "lockfileVersion": 3, "packages": {"node_modules/a": {"version": "1.0.0"}}})
        _write_json(tmp_path / "package-lock.json", {
            "lockfileVersion": 3, "packages": {"node_modules/b": {"version": "1.0.0"}}})

        manifest = load_install_manifest("npm", str(tmp_path))

        assert manifest.source.endswith("npm-shrinkwrap.json")
        assert manifest.resolved == ["a@1.0.0"]
        assert manifest.specs == []

    def test_pnpm_reads_its_lockfile(self, tmp_path):
        (tmp_path / "pnpm-lock.yaml").write_text(
            "lockfileVersion: '9.0'\npackages:\n  a@1.0.0: {}\n", encoding="utf-8")
        _write_json(tmp_path / "package-lock.json", {
            "lockfileVersion": 3, "packages": {"node_modules/b": {"version": "1.0.0"}}})

        assert load_install_manifest("pnpm", str(tmp_path)).resolved == ["a@1.0.0"]

    def test_yarn_falls_back_to_package_json(self, tmp_path):
        _write_json(tmp_path / "package.json", {"dependencies": {"a": "1.0.0"}})

        manifest = load_install_manifest("yarn", str(tmp_path))

        assert manifest.resolved == []
        assert manifest.specs == ["a@1.0.0"]

    def test_empty_package_json(self, tmp_path):
        _write_json(tmp_path / "package.json", {"name": "app"})
        assert load_install_manifest("bun", str(tmp_path)).empty is True

    def test_missing_manifest_raises(self, tmp_path):
        with pytest.raises(ManifestError, match="package.json"):
            load_install_manifest("npm", str(tmp_path))
