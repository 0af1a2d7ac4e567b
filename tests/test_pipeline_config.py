import os
import unittest
from unittest.mock import patch

from config.pipeline_config import ConfigError, PipelineConfig


class PipelineConfigTests(unittest.TestCase):
    def test_defaults(self) -> None:
        cfg = PipelineConfig()
        self.assertEqual(cfg.stage1_max_tokens, 1500)
        self.assertEqual(cfg.stage3_max_tokens, 5500)
        self.assertEqual(cfg.retry_max_tokens, 2500)
        self.assertEqual(cfg.max_ranked_queries, 2)
        self.assertEqual(cfg.max_fallback_queries, 3)

    def test_retry_budget_never_exceeds_stage3_budget(self) -> None:
        self.assertEqual(PipelineConfig(stage3_max_tokens=2000).retry_max_tokens, 2000)

    def test_from_env(self) -> None:
        env = {
            "OPENAI_API_KEY": "sk-test",
            "OPENAI_STAGE3_MAX_TOKENS": "4000",
            "OPENAI_STAGE3_REASONING_EFFORT": "xhigh",
            "ENABLE_NARRATIVE_METRICS": "false",
            "PERPLEXITY_API_KEY": "pplx",
        }
        with patch.dict(os.environ, env, clear=True):
            cfg = PipelineConfig.from_env()
        self.assertEqual(cfg.stage3_max_tokens, 4000)
        self.assertEqual(cfg.stage3_reasoning, "high")
        self.assertFalse(cfg.enable_narrative_metrics)
        self.assertEqual(cfg.perplexity_api_key, "pplx")
        self.assertEqual(cfg.stage1_reasoning, "high")

    def test_invalid_values_raise(self) -> None:
        with patch.dict(os.environ, {"OPENAI_REASONING_EFFORT": "maximum"}, clear=True):
            with self.assertRaises(ConfigError):
                PipelineConfig.from_env()
        with patch.dict(os.environ, {"STAGE1_MAX_TOKENS": "lots"}, clear=True):
            with self.assertRaises(ConfigError):
                PipelineConfig.from_env()


if __name__ == "__main__":
    unittest.main()
