"""Tests for forum_bridge.config_schema."""

import pytest
from pydantic import ValidationError

from forum_bridge.config_schema import (
    DiscordConfig,
    HealthConfig,
    KnowledgeBaseConfig,
    LoggingConfig,
    SyncConfig,
    UnifiedConfig,
    build_config,
    to_yaml_fallbacks,
)


class TestSectionModels:
    def test_discord_defaults(self):
        cfg = DiscordConfig()
        assert cfg.token is None
        assert cfg.forum_mappings is None

    def test_knowledge_base_defaults(self):
        cfg = KnowledgeBaseConfig()
        assert cfg.request_timeout == 30
        assert cfg.max_parallel_requests == 5

    def test_knowledge_base_bounds(self):
        with pytest.raises(ValidationError):
            KnowledgeBaseConfig(max_parallel_requests=0)
        with pytest.raises(ValidationError):
            KnowledgeBaseConfig(request_timeout=301)

    def test_sync_bounds(self):
        with pytest.raises(ValidationError):
            SyncConfig(resolve_lookback=0)
        with pytest.raises(ValidationError):
            SyncConfig(conversation_limit=101)

    def test_health_port_bounds(self):
        assert HealthConfig(port=0).port == 0
        with pytest.raises(ValidationError):
            HealthConfig(port=65536)

    def test_logging_defaults(self):
        cfg = LoggingConfig()
        assert cfg.level == "INFO"
        assert cfg.file is None
        assert cfg.format == "text"

    def test_frozen(self):
        cfg = SyncConfig()
        with pytest.raises(ValidationError):
            cfg.repository = "other"


class TestBuildConfig:
    def test_empty(self):
        assert build_config({}) == UnifiedConfig()

    def test_sections(self):
        cfg = build_config(
            {
                "discord": {"token": "t", "forum_mappings": {123456789012345678: "ft"}},
                "sync": {"repository": "support"},
            }
        )
        assert cfg.discord.token == "t"
        assert cfg.sync.repository == "support"
        assert cfg.knowledge_base == KnowledgeBaseConfig()

    def test_invalid_section_raises(self):
        with pytest.raises(ValidationError):
            build_config({"health": {"port": "not-a-port"}})


class TestToYamlFallbacks:
    def test_zero_config_is_empty(self):
        assert to_yaml_fallbacks(UnifiedConfig()) == {}

    def test_strings_are_flattened(self):
        cfg = build_config(
            {
                "discord": {"token": "t", "forum_mappings": {"1": "ft"}},
                "knowledge_base": {
                    "api_url": "https://kb.example.com/api",
                    "api_key": "k",
                    "workspace_id": "ws",
                },
                "sync": {"repository": "support"},
            }
        )
        assert to_yaml_fallbacks(cfg) == {
            "discord_token": "t",
            "forum_mappings": {"1": "ft"},
            "api_url": "https://kb.example.com/api",
            "api_key": "k",
            "workspace_id": "ws",
            "repository": "support",
        }

    def test_only_explicit_numbers_and_bools(self):
        cfg = build_config(
            {
                "knowledge_base": {"max_parallel_requests": 8},
                "sync": {"create_on_late_event": False},
                "health": {"port": 0},
            }
        )
        assert to_yaml_fallbacks(cfg) == {
            "max_parallel_requests": 8,
            "create_on_late_event": False,
            "health_port": 0,
        }
