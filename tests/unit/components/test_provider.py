"""Unit tests for ComponentProvider."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from stackforge.artifacts.archive import sha256_file
from stackforge.components.compilable import Library, MakeComponent
from stackforge.components.provider import ComponentProvider, ComponentReference
from stackforge.errors import NotFoundError, ValidationError, VersionMismatchError


@pytest.fixture
def provider():
    return ComponentProvider()


class TestParseComponentReference:
    """Test suite for reference parsing."""

    @pytest.mark.parametrize(
        "reference,expected",
        [
            ("zlib", ("zlib", None, None)),
            ("zlib@1.2.11", ("zlib", "1.2.11", None)),
            ("zlib:/tmp/zlib-1.2.11.tar.gz", ("zlib", None, "/tmp/zlib-1.2.11.tar.gz")),
            ("zlib@1.2.11:/tmp/zlib.tar.gz", ("zlib", "1.2.11", "/tmp/zlib.tar.gz")),
            (
                "zlib@1.2.11:https://zlib.net/zlib-1.2.11.tar.gz",
                ("zlib", "1.2.11", "https://zlib.net/zlib-1.2.11.tar.gz"),
            ),
        ],
    )
    def test_string_forms(self, provider, reference, expected):
        parsed = provider.parse_component_reference(reference)
        assert (parsed.id, parsed.version, parsed.source_tarball) == expected

    def test_dict_form(self, provider):
        parsed = provider.parse_component_reference(
            {
                "id": "zlib",
                "version": "1.2.11",
                "sourceTarball": "/tmp/zlib.tar.gz",
                "sha256": "abc",
                "patches": ["/p/1.patch"],
                "extraFiles": [{"path": "/x/zlib.pc", "sha256": "def"}],
            }
        )
        assert parsed.sha256 == "abc"
        assert parsed.patches == ["/p/1.patch"]
        assert parsed.to_dict() == {
            "id": "zlib",
            "version": "1.2.11",
            "sourceTarball": "/tmp/zlib.tar.gz",
            "patches": ["/p/1.patch"],
            "extraFiles": [{"path": "/x/zlib.pc", "sha256": "def"}],
        }

    def test_warns_without_tarball(self, provider, caplog):
        provider.parse_component_reference("zlib@1.2.11")
        assert "You should specify a sourceTarball for zlib" in caplog.text

    @pytest.mark.parametrize("reference", ["", "@1.0", {"version": "1.0"}, 42])
    def test_invalid(self, provider, reference):
        with pytest.raises(ValidationError):
            provider.parse_component_reference(reference)


class TestGetComponent:
    """Test suite for component instantiation."""

    def test_default_class(self, provider, make_tarball):
        tarball, sha256 = make_tarball("zlib-1.2.11", {"configure": ""})

        component = provider.get_component(f"zlib:{tarball}")

        assert isinstance(component, MakeComponent)
        assert component.id == "zlib"
        assert component.version == "1.2.11"
        assert component.source.tarball == str(tarball)
        assert component.source.sha256 == sha256

    def test_registered_recipe(self, provider):
        provider.register("zlib", Library, {"licenses": [{"type": "ZLIB", "licenseUrl": "https://zlib.net"}]})

        component = provider.get_component("zlib@1.2.11")

        assert isinstance(component, Library)
        assert component.metadata.licenses[0].license_url == "https://zlib.net"
        assert provider.has_recipe("zlib")

    def test_unknown_without_default(self):
        provider = ComponentProvider(default_component_class=None)
        with pytest.raises(NotFoundError):
            provider.get_component("zlib@1.2.11")

    def test_version_mismatch(self, provider):
        provider.register("zlib", MakeComponent, {"version": "1.2.11"})
        with pytest.raises(VersionMismatchError):
            provider.get_component("zlib@1.3")

    def test_recipe_version_used_by_default(self, provider):
        provider.register("zlib", MakeComponent, {"version": "1.2.11"})
        assert provider.get_component("zlib").version == "1.2.11"

    def test_tarball_found_in_source_paths(self, make_tarball, tmp_path):
        tarball, sha256 = make_tarball("zlib-1.2.11", {"configure": ""})
        provider = ComponentProvider(source_paths=[tarball.parent])

        component = provider.get_component("zlib@1.2.11")

        assert component.source.tarball == str(tarball.resolve())
        assert component.source.sha256 == sha256

    def test_declared_checksum_is_kept(self, provider, make_tarball):
        tarball, _ = make_tarball("zlib-1.2.11", {"configure": ""})
        component = provider.get_component({"id": "zlib", "sourceTarball": str(tarball), "sha256": "abc"})
        assert component.source.sha256 == "abc"

    def test_url_tarball_is_downloaded(self, make_tarball, tmp_path):
        """Test that URL sources are fetched into the cache."""
        tarball, sha256 = make_tarball("zlib-1.2.11", {"configure": ""})
        downloader = MagicMock()
        downloader.fetch.return_value = tarball
        provider = ComponentProvider(cache_dir=tmp_path / "cache", downloader=downloader)

        component = provider.get_component("zlib:https://zlib.net/zlib-1.2.11.tar.gz")

        downloader.fetch.assert_called_once_with(
            "https://zlib.net/zlib-1.2.11.tar.gz", tmp_path / "cache", None
        )
        assert component.version == "1.2.11"
        assert component.source.tarball == str(tarball)
        assert component.source.sha256 == sha256

    def test_url_tarball_without_cache(self, provider):
        with pytest.raises(NotFoundError):
            provider.get_component("zlib:https://zlib.net/zlib-1.2.11.tar.gz")

    def test_patches_and_extra_files(self, provider):
        component = provider.get_component(
            ComponentReference(id="zlib", version="1.2.11", patches=["/p/1.patch"], extra_files=[Path("/x/zlib.pc")])
        )
        assert [p.path for p in component.patches] == ["/p/1.patch"]
        assert [f.path for f in component.extra_files] == ["/x/zlib.pc"]
