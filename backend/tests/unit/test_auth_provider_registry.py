"""Unit tests for provider configuration and the provider type registry."""

import pytest

from multiauth.config import Settings
from multiauth.services.identity.base import AuthProvider, LoginRedirect, ProviderConfig, RemoteUserInfo
from multiauth.services.identity.exceptions import (
    ConfigurationError,
    InvalidAuthProviderClassError,
    UnknownAuthProviderError,
)
from multiauth.services.identity.facebook import FacebookAuthProvider
from multiauth.services.identity.hooks import GET_AUTH_PROVIDERS, AuthHooks
from multiauth.services.identity.mediawiki import MediaWikiAuthProvider
from multiauth.services.identity.registry import (
    AuthProviderRegistry,
    get_provider_config,
    import_provider_class,
    validate_provider_class,
)


class StaticProvider(AuthProvider):
    """Always logs in as the same remote user."""

    provider_type = "static"

    async def login(self):
        return LoginRedirect(redirect_url="https://static.example/login", key="k", secret="s")

    async def complete_login(self, key, secret, callback_params):
        return RemoteUserInfo(name="Static")


class HalfProvider(AuthProvider):
    async def login(self):
        return None


def _config(provider_type: str, **extra) -> ProviderConfig:
    return ProviderConfig(
        provider_id="test",
        type=provider_type,
        client_id="id",
        client_secret="secret",
        **extra,
    )


# ---------------------------------------------------------------------------
# ProviderConfig
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestProviderConfig:
    """Test parsing of provider configuration blocks."""

    def test_from_mapping(self):
        config = ProviderConfig.from_mapping(
            "wiki",
            {
                "type": "mediawiki",
                "clientId": "key",
                "clientSecret": "secret",
                "uri": "https://wiki.example.org/index.php?title=Special:OAuth",
                "redirectUri": "https://app.example.org/callback",
                "migrateUsersByUsername": True,
            },
        )

        assert config.provider_id == "wiki"
        assert config.type == "mediawiki"
        assert config.client_id == "key"
        assert config.auth_uri == "https://wiki.example.org/index.php?title=Special:OAuth"
        assert config.redirect_uri == "https://app.example.org/callback"
        assert config.migrate_users_by_username is True
        assert config.disallow_remote_only_accounts is None

    @pytest.mark.parametrize(
        "data,message",
        [
            (None, "is not configured"),
            ({}, "is not configured"),
            ({"clientId": "k", "clientSecret": "s"}, "is not configured"),
            ({"type": "mediawiki", "clientSecret": "s"}, "clientId"),
            ({"type": "mediawiki", "clientId": "k"}, "clientSecret"),
        ],
    )
    def test_incomplete_block(self, data, message):
        with pytest.raises(ConfigurationError, match=message):
            ProviderConfig.from_mapping("wiki", data)

    def test_get_provider_config_reads_settings(self):
        app_settings = Settings(
            OAUTH_PROVIDERS={"fb": {"type": "facebook", "clientId": "app", "clientSecret": "s"}}
        )

        assert get_provider_config("fb", app_settings).type == "facebook"
        with pytest.raises(ConfigurationError):
            get_provider_config("missing", app_settings)

    def test_settings_reject_provider_without_type(self):
        with pytest.raises(ValueError):
            Settings(OAUTH_PROVIDERS={"fb": {"clientId": "app"}})

    @pytest.mark.parametrize(
        "block,missing",
        [
            ({"type": "facebook", "clientId": "x"}, "clientSecret"),
            ({"type": "facebook", "clientSecret": "x"}, "clientId"),
            ({"type": "facebook", "clientId": "", "clientSecret": "x"}, "clientId"),
        ],
    )
    def test_settings_reject_provider_without_credentials(self, block, missing):
        with pytest.raises(ValueError, match=missing):
            Settings(OAUTH_PROVIDERS={"wiki": block})


# ---------------------------------------------------------------------------
# Class validation
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestValidateProviderClass:
    """Test the provider contract check."""

    def test_concrete_subclass_is_accepted(self):
        assert validate_provider_class(StaticProvider) is StaticProvider

    @pytest.mark.parametrize("candidate", [object, "StaticProvider", StaticProvider(_config("static"))])
    def test_non_provider_is_rejected(self, candidate):
        with pytest.raises(InvalidAuthProviderClassError, match="not a subclass"):
            validate_provider_class(candidate)

    def test_abstract_subclass_is_rejected(self):
        with pytest.raises(InvalidAuthProviderClassError, match="complete_login"):
            validate_provider_class(HalfProvider)

    def test_import_by_dotted_path(self):
        path = f"{__name__}:StaticProvider"
        assert import_provider_class(path) is StaticProvider
        assert import_provider_class(f"{__name__}.StaticProvider") is StaticProvider

    def test_import_of_missing_class(self):
        with pytest.raises(InvalidAuthProviderClassError, match="Cannot import"):
            import_provider_class(f"{__name__}:NoSuchProvider")


# ---------------------------------------------------------------------------
# AuthProviderRegistry
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestAuthProviderRegistry:
    """Test type -> implementation resolution."""

    def test_default_types(self):
        registry = AuthProviderRegistry()

        assert registry.resolve("mediawiki") is MediaWikiAuthProvider
        assert registry.resolve("facebook") is FacebookAuthProvider

    def test_unknown_type(self):
        with pytest.raises(UnknownAuthProviderError, match="'nope'"):
            AuthProviderRegistry().resolve("nope")

    def test_create_instantiates_with_config(self):
        registry = AuthProviderRegistry()
        config = _config("facebook")

        provider = registry.create(config)

        assert isinstance(provider, FacebookAuthProvider)
        assert provider.config is config

    def test_register(self):
        registry = AuthProviderRegistry()
        registry.register("static", StaticProvider)

        assert isinstance(registry.create(_config("static")), StaticProvider)

    def test_register_rejects_invalid_class(self):
        with pytest.raises(InvalidAuthProviderClassError):
            AuthProviderRegistry().register("half", HalfProvider)

    def test_custom_provider_by_path(self):
        registry = AuthProviderRegistry(custom_providers={"static": f"{__name__}:StaticProvider"})

        assert registry.resolve("static") is StaticProvider

    @pytest.mark.parametrize(
        "target",
        [
            "no.such.module:Provider",
            f"{__name__}:HalfProvider",
            "multiauth.services.identity.base:RemoteUserInfo",
        ],
    )
    def test_custom_provider_is_checked_on_construction(self, target):
        with pytest.raises(InvalidAuthProviderClassError):
            AuthProviderRegistry(custom_providers={"static": target})

    def test_check_configured_providers(self):
        app_settings = Settings(
            OAUTH_PROVIDERS={
                "wiki": {
                    "type": "mediawiki",
                    "clientId": "id",
                    "clientSecret": "s",
                    "uri": "https://wiki.example.org/index.php?title=Special:OAuth",
                },
                "fb": {"type": "facebook", "clientId": "id", "clientSecret": "s"},
            }
        )

        assert AuthProviderRegistry().check_configured_providers(app_settings) == ["wiki", "fb"]

    def test_check_configured_providers_rejects_mediawiki_without_uri(self):
        app_settings = Settings(
            OAUTH_PROVIDERS={"wiki": {"type": "mediawiki", "clientId": "id", "clientSecret": "s"}}
        )

        with pytest.raises(ConfigurationError, match="requires 'uri'"):
            AuthProviderRegistry().check_configured_providers(app_settings)

    def test_check_configured_providers_rejects_unknown_type(self):
        app_settings = Settings(
            OAUTH_PROVIDERS={"x": {"type": "nope", "clientId": "id", "clientSecret": "s"}}
        )

        with pytest.raises(UnknownAuthProviderError):
            AuthProviderRegistry().check_configured_providers(app_settings)

    def test_hook_can_add_and_replace_bindings(self):
        hooks = AuthHooks()

        def extend(bindings):
            bindings["static"] = StaticProvider
            bindings["facebook"] = StaticProvider

        hooks.register(GET_AUTH_PROVIDERS, extend)
        registry = AuthProviderRegistry(hooks=hooks)

        assert registry.resolve("static") is StaticProvider
        assert registry.resolve("facebook") is StaticProvider
        assert registry.resolve("mediawiki") is MediaWikiAuthProvider

    def test_failing_hook_is_ignored(self):
        hooks = AuthHooks()

        def broken(bindings):
            raise RuntimeError("extension bug")

        hooks.register(GET_AUTH_PROVIDERS, broken)
        hooks.register(GET_AUTH_PROVIDERS, lambda bindings: bindings.update(static=StaticProvider))
        registry = AuthProviderRegistry(hooks=hooks)

        assert registry.resolve("static") is StaticProvider
        assert registry.resolve("mediawiki") is MediaWikiAuthProvider

    def test_hook_binding_to_non_provider(self):
        hooks = AuthHooks()
        hooks.register(GET_AUTH_PROVIDERS, lambda bindings: bindings.update(static=dict))

        with pytest.raises(InvalidAuthProviderClassError):
            AuthProviderRegistry(hooks=hooks).resolve("static")

    def test_registration_wins_over_configuration(self):
        registry = AuthProviderRegistry(
            custom_providers={"facebook": "multiauth.services.identity.mediawiki:MediaWikiAuthProvider"}
        )
        assert registry.resolve("facebook") is MediaWikiAuthProvider

        registry.register("facebook", StaticProvider)

        assert registry.resolve("facebook") is StaticProvider
