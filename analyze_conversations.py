#!/usr/bin/env python3
"""
WhatsApp Conversation Analysis CLI
Serves per-conversation analyses, runs the bulk per-message job and builds
the KPI dashboard from the command line. Output is printed as JSON.
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime
from typing import Any, Dict, Optional

from api.clients.deepseek_client import DeepSeekClient
from api.clients.transcription_client import TranscriptionClient
from audio_transcription import AudioTranscriber
from config import AppConfig
from config_manager import AnalysisSettings, ConfigManager
from conversation_analysis import AnalysisOrchestrator
from dao.analysis_dao import AnalysisCacheDAO
from dao.message_analysis_dao import MessageAnalysisDAO
from dao.message_dao import MessageDAO
from dao.stats_dao import StatsDAO
from exceptions.analysis_exceptions import AnalysisUnavailable, EmptyConversation
from kpi_reducer import KPIReducer
from models import ConversationKey, Message, SUMMARY, LEAD_INFO, CONVERSATION_KPIS
from providers.gateway import InferenceGateway
from providers.local_provider import LocalProvider
from providers.remote_provider import RemoteProvider
from setup_database import DatabaseSetup
from utils.error.error_handler import ConfigurationError, graceful_exit, setup_logger

logger = logging.getLogger(__name__)

KIND_COMMANDS = {
    "summary": SUMMARY,
    "lead": LEAD_INFO,
    "kpis": CONVERSATION_KPIS,
}


def build_gateway(settings: AnalysisSettings) -> InferenceGateway:
    """
    Local provider always; remote provider when a DeepSeek key is configured;
    transformers models only when LOCAL_MODELS_ENABLED is set.
    """
    model_hub = None
    if AppConfig.local_models_enabled():
        from providers.model_hub import TransformersModelHub
        model_hub = TransformersModelHub()
        model_hub.initialize()

    remote = None
    api_key = AppConfig.get_api_keys()["deepseek"]
    if api_key:
        api_settings = AppConfig.get_api_settings()
        client = DeepSeekClient(
            api_key=api_key,
            model=api_settings["model"],
            base_url=api_settings["base_url"],
            max_retries=settings.remote_max_retries,
        )
        remote = RemoteProvider(client, settings)
    else:
        logger.info("DEEPSEEK_API_KEY not set, using the local provider only")

    return InferenceGateway(local=LocalProvider(settings, model_hub=model_hub), remote=remote, settings=settings)


def build_orchestrator(db_path: str, settings: AnalysisSettings,
                       media_root: Optional[str] = None) -> AnalysisOrchestrator:
    """Wire DAOs, gateway and transcriber into an orchestrator"""
    message_dao = MessageDAO(db_path)

    transcriber = None
    groq_key = AppConfig.get_api_keys()["groq"]
    if groq_key:
        api_settings = AppConfig.get_api_settings()
        client = TranscriptionClient(
            api_key=groq_key,
            base_url=api_settings["transcription_base_url"],
            model=api_settings["transcription_model"],
        )
        transcriber = AudioTranscriber(client, message_dao, media_root=media_root)

    return AnalysisOrchestrator(
        message_dao=message_dao,
        cache_dao=AnalysisCacheDAO(db_path),
        gateway=build_gateway(settings),
        settings=settings,
        message_analysis_dao=MessageAnalysisDAO(db_path),
        stats_dao=StatsDAO(db_path),
        transcriber=transcriber,
    )


def parse_date(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date: {value} (expected YYYY-MM-DD[THH:MM])")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="WhatsApp conversation intelligence")
    parser.add_argument("--db-path", help="Path to the database file")
    parser.add_argument("--config", help="Path to a JSON configuration file")
    parser.add_argument("--media-root", help="Directory audio media paths are relative to")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command")

    for name, kind in KIND_COMMANDS.items():
        kind_parser = subparsers.add_parser(name, help=f"Get the {kind} analysis of a conversation")
        kind_parser.add_argument("account_id", help="Account id")
        kind_parser.add_argument("contact_number", help="Contact number")
        kind_parser.add_argument("--force", action="store_true", help="Recompute even without new messages")

    bulk_parser = subparsers.add_parser("bulk", help="Analyze recent received messages one by one")
    bulk_parser.add_argument("--limit", type=int, default=100, help="Maximum number of messages")
    bulk_parser.add_argument("--all", action="store_true", help="Include already analyzed messages")

    dashboard_parser = subparsers.add_parser("dashboard", help="Build the KPI dashboard")
    dashboard_parser.add_argument("--account", help="Restrict to one account")
    dashboard_parser.add_argument("--start", type=parse_date, help="Period start")
    dashboard_parser.add_argument("--end", type=parse_date, help="Period end")
    dashboard_parser.add_argument("--sla", type=float, help="SLA target in minutes")

    delete_parser = subparsers.add_parser("delete", help="Delete a conversation and its analyses")
    delete_parser.add_argument("account_id")
    delete_parser.add_argument("contact_number")

    migrate_parser = subparsers.add_parser("migrate", help="Move a conversation to a new contact number")
    migrate_parser.add_argument("account_id")
    migrate_parser.add_argument("old_number")
    migrate_parser.add_argument("new_number")

    ingest_parser = subparsers.add_parser("ingest", help="Load messages from a JSON file")
    ingest_parser.add_argument("file", help="JSON list of messages with account_id and contact_number")

    subparsers.add_parser("runs", help="Show recent bulk analysis runs")

    config_parser = subparsers.add_parser("config", help="Show or set configuration values")
    config_parser.add_argument("key", nargs="?", help="Key to set")
    config_parser.add_argument("value", nargs="?", help="New value")

    return parser.parse_args(argv)


def ingest(message_dao: MessageDAO, path: str) -> Dict[str, int]:
    with open(path, "r", encoding="utf-8") as f:
        rows = json.load(f)
    entries = [
        (ConversationKey(row["account_id"], row["contact_number"]), Message.from_row(row), row.get("contact_name"))
        for row in rows
    ]
    inserted = message_dao.add_messages(entries)
    logger.info(f"Ingested {inserted} of {len(rows)} messages from {path}")
    return {"read": len(rows), "inserted": inserted}


async def run_command(args: argparse.Namespace, config: ConfigManager) -> Any:
    settings = AnalysisSettings.from_config(config)
    orchestrator = build_orchestrator(config.db_path, settings, media_root=args.media_root)
    try:
        if args.command in KIND_COMMANDS:
            key = ConversationKey(args.account_id, args.contact_number)
            result = await orchestrator.get_analysis(key, KIND_COMMANDS[args.command], force_refresh=args.force)
            return result.to_dict()

        if args.command == "bulk":
            return await orchestrator.analyze_messages(limit=args.limit, only_new=not args.all)

        if args.command == "dashboard":
            reducer = KPIReducer(settings)
            return reducer.build_dashboard(
                orchestrator.message_dao.list_all(args.start, args.end, args.account),
                orchestrator.message_analysis_dao.list_analyses(args.start, args.end, args.account),
                orchestrator.cache_dao.list_records(SUMMARY, args.account, args.start),
                start=args.start, end=args.end, account_id=args.account,
                sla_target_minutes=args.sla,
            )

        if args.command == "delete":
            deleted = await orchestrator.delete_conversation(ConversationKey(args.account_id, args.contact_number))
            return {"deleted_messages": deleted}

        if args.command == "migrate":
            moved = await orchestrator.migrate_contact(args.account_id, args.old_number, args.new_number)
            return {"moved_messages": moved}

        if args.command == "ingest":
            return ingest(orchestrator.message_dao, args.file)

        if args.command == "runs":
            stats_dao = orchestrator.stats_dao
            return {"summary": stats_dao.get_summary_stats(), "recent": stats_dao.get_recent_runs()}
    finally:
        await orchestrator.shutdown()


@graceful_exit()
def main(argv=None) -> int:
    """Main entry point"""
    args = parse_args(argv)
    setup_logger(AppConfig.get_log_file(), logging.DEBUG if args.verbose else logging.INFO)

    db_path = args.db_path or AppConfig.get_db_path()
    if not DatabaseSetup(db_path).create_tables():
        logger.error(f"Could not prepare database {db_path}")
        return 1
    config = ConfigManager(args.config or AppConfig.get_config_file(), db_path)

    if not args.command:
        print("No command specified. Run with --help for usage information.")
        return 1

    if args.command == "config":
        if args.key:
            if args.value is None:
                print(json.dumps({args.key: config.get(args.key)}, indent=2, ensure_ascii=False))
                return 0
            try:
                value = config.parse_value(args.key, args.value)
            except ConfigurationError as e:
                print(str(e))
                return 1
            return 0 if config.set(args.key, value) else 1
        print(json.dumps(config.get_all(), indent=2, ensure_ascii=False))
        return 0

    try:
        output = asyncio.run(run_command(args, config))
    except (EmptyConversation, AnalysisUnavailable) as e:
        print(json.dumps({"error": type(e).__name__, "message": str(e)}, ensure_ascii=False))
        return 2

    print(json.dumps(output, indent=2, ensure_ascii=False, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
