"""Unit tests for ComponentList."""

import pytest

from stackforge.build.component_list import ComponentList
from stackforge.components.compilable import CompilableComponent
from stackforge.components.provider import ComponentProvider
from stackforge.errors import NotFoundError, ValidationError


@pytest.fixture
def provider(scripted_component_class, custom_license):
    provider = ComponentProvider(default_component_class=scripted_component_class)
    provider.register("zlib", CompilableComponent, custom_license)
    provider.register("openssl", CompilableComponent, custom_license)
    return provider


class TestComponentList:
    """Test suite for ComponentList."""

    def test_keeps_insertion_order(self, provider, build_env):
        components = ComponentList(["zlib@1.2.11", "openssl@1.1.1"], provider, build_env)

        assert [c.id for c in components] == ["zlib", "openssl"]
        assert len(components) == 2
        assert components.get_index("openssl") == 1
        assert components.get_index("curl") == -1
        assert components.get_printable_list() == "zlib@1.2.11, openssl@1.1.1"

    def test_accepts_build_data_object(self, provider, build_env):
        components = ComponentList({"components": ["zlib@1.2.11"]}, provider, build_env)
        assert components.get("zlib").version == "1.2.11"

    def test_get_unknown(self, provider, build_env):
        components = ComponentList([], provider, build_env)
        with pytest.raises(NotFoundError):
            components.get("zlib")

    def test_merge_forward(self, provider, build_env):
        """Test that re-adding an id keeps the fields the new entry leaves empty."""
        components = ComponentList([], provider, build_env)
        components.add({"id": "zlib", "version": "1.2.11", "patches": ["/patches/p1.patch"]})
        components.add({"id": "zlib", "version": "1.2.11"})

        assert len(components) == 1
        assert [p.path for p in components.get("zlib").patches] == ["/patches/p1.patch"]

    def test_replace_keeps_position(self, provider, build_env):
        components = ComponentList(["zlib@1.2.11", "openssl@1.1.1"], provider, build_env)
        replaced = components.add({"id": "zlib", "version": "1.2.11", "patches": ["/p2.patch"]})

        assert components.components[0] is replaced
        assert [p.path for p in replaced.patches] == ["/p2.patch"]

    def test_exports_environment(self, provider, build_env):
        """Test that added components export their directories."""
        ComponentList(["zlib@1.2.11"], provider, build_env)
        cppflags = build_env.get_env_variables()["CPPFLAGS"]

        assert f"-I{build_env.prefix_dir / 'zlib' / 'include'}" in cppflags

    def test_validation_error_aborts(self, scripted_component_class, build_env):
        provider = ComponentProvider(default_component_class=scripted_component_class)
        with pytest.raises(ValidationError, match="licenses"):
            ComponentList(["mystery@1.0"], provider, build_env)

    def test_validation_error_downgraded(self, scripted_component_class, build_env, caplog):
        """Test that validation errors only warn when not aborting."""
        provider = ComponentProvider(default_component_class=scripted_component_class)
        components = ComponentList(["mystery@1.0"], provider, build_env, abort_on_error=False)

        assert components.get_index("mystery") == 0
        assert "Component validation failed" in caplog.text

    def test_hooks_can_be_disabled(self, scripted_component_class, build_env):
        provider = ComponentProvider(default_component_class=scripted_component_class)
        components = ComponentList(["mystery"], provider, build_env, initialize=False, validate=False)
        assert components.get("mystery").version is None


class TestPopulateFlags:
    """Test suite for populate_flags_from_dependencies."""

    @pytest.fixture
    def components(self, provider, build_env):
        return ComponentList(["zlib@1.2.11", "openssl@1.1.1"], provider, build_env)

    def test_renders_templates(self, components, build_env):
        flags = components.populate_flags_from_dependencies(
            {
                "zlib": ["--with-zlib={{prefix}}", "--zlib-include={{headersDir}}"],
                "openssl": {"flags": ["--with-ssl={{ prefix }}"]},
            }
        )

        assert flags == [
            f"--with-zlib={build_env.prefix_dir / 'zlib'}",
            f"--zlib-include={build_env.prefix_dir / 'zlib' / 'include'}",
            f"--with-ssl={build_env.prefix_dir / 'openssl'}",
        ]

    def test_snake_case_placeholder(self, components, build_env):
        flags = components.populate_flags_from_dependencies({"zlib": ["{{lib_dir}}"]})
        assert flags == [str(build_env.prefix_dir / "zlib" / "lib")]

    def test_missing_required_dependency(self, components):
        with pytest.raises(NotFoundError):
            components.populate_flags_from_dependencies({"curl": ["--with-curl={{prefix}}"]})

    def test_missing_optional_dependency_skipped(self, components):
        flags = components.populate_flags_from_dependencies(
            {"curl": {"required": False, "flags": ["--with-curl={{prefix}}"]}}
        )
        assert flags == []

    def test_unknown_placeholder(self, components):
        with pytest.raises(ValidationError):
            components.populate_flags_from_dependencies({"zlib": ["{{colour}}"]})

    def test_unknown_format(self, components):
        with pytest.raises(ValidationError):
            components.populate_flags_from_dependencies({"zlib": "--with-zlib"})
