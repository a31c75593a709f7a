from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from uplink_alerts.core.config.yaml_config import AppConfig, load_app_config
from uplink_alerts.core.dedup import PanicDeduplicator
from uplink_alerts.core.recipients import RecipientRegistry
from uplink_alerts.core.state.key_value_store import InMemoryKeyValueStore
from uplink_alerts.notification.base import MessageSender
from uplink_alerts.notification.dispatcher import Dispatcher
from uplink_alerts.notification.message_format import FormatOptions
from uplink_alerts.notification.twilio_sender import TwilioConfig, TwilioWhatsAppSender
from uplink_alerts.services.pipeline import UplinkPipeline


@dataclass(frozen=True)
class AppWiring:
    """Everything the HTTP layer needs to run the service."""
    config: AppConfig
    registry: RecipientRegistry
    dedup: PanicDeduplicator
    dispatcher: Dispatcher
    pipeline: UplinkPipeline


def build_sender(cfg: AppConfig) -> TwilioWhatsAppSender:
    return TwilioWhatsAppSender(
        TwilioConfig(
            account_sid=cfg.twilio.account_sid,
            auth_token=cfg.twilio.auth_token,
            api_base=cfg.twilio.api_base,
            timeout_s=cfg.twilio.timeout_s,
            verify_tls=cfg.twilio.verify_tls,
        )
    )


def build_app_system(
    config_path: Optional[str] = None,
    cfg: Optional[AppConfig] = None,
    sender: Optional[MessageSender] = None,
) -> AppWiring:
    """
    Wire the pipeline from configuration.

    Parameters
    ----------
    config_path
        YAML config path; ignored when ``cfg`` is given.
    cfg
        Pre-built configuration (tests).
    sender
        Transport override (tests); defaults to the Twilio sender.
    """
    cfg = cfg or load_app_config(config_path)

    # --- STATE ---
    registry = RecipientRegistry.from_config(
        fixed=cfg.recipients.fixed,
        initial=cfg.recipients.initial,
        rules=cfg.recipients.rules,
    )
    dedup = PanicDeduplicator(window_s=cfg.panic_window_s, store=InMemoryKeyValueStore())

    # --- NOTIFICATIONS ---
    dispatcher = Dispatcher(
        sender=sender if sender is not None else build_sender(cfg),
        from_address=cfg.twilio.from_address,
    )

    # --- PIPELINE ---
    pipeline = UplinkPipeline(
        dedup=dedup,
        registry=registry,
        dispatcher=dispatcher,
        houses=cfg.houses,
        format_options=FormatOptions(
            timezone=cfg.format.timezone,
            timezone_label=cfg.format.timezone_label,
            signature=cfg.format.signature,
        ),
        webhook_secret=cfg.server.webhook_secret,
    )

    return AppWiring(config=cfg, registry=registry, dedup=dedup, dispatcher=dispatcher, pipeline=pipeline)
