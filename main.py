"""
Supra AutoFi Agent - main entry point

Initializes all modules, wires event listeners, starts the CLI or the server.
One file to understand how everything connects.

Usage:
    python main.py              # Interactive chat CLI
    python main.py serve        # HTTP API (FastAPI + uvicorn)
"""

import re
import sys
import time
import random
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from colorama import Fore, Style, init as color_init
from dotenv import load_dotenv
from openai import AsyncOpenAI

# ============================================================
# BOOTSTRAP
# ============================================================

load_dotenv()


class _SecretMaskingFilter(logging.Filter):
    """Redact bare 64-char hex strings (private keys) from all log output. 0x-prefixed addresses pass."""
    _PATTERN = re.compile(r'(?<![0-9a-fA-FxX])([0-9a-fA-F]{64})(?![0-9a-fA-F])')

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if isinstance(record.msg, str):
            record.msg = self._PATTERN.sub('[REDACTED]', record.msg)
        if record.args:
            try:
                formatted = record.getMessage()
            except (TypeError, ValueError):
                return True
            if self._PATTERN.search(formatted):
                record.msg = self._PATTERN.sub('[REDACTED]', formatted)
                record.args = None
        return True


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    mask_filter = _SecretMaskingFilter()
    for handler in logging.root.handlers:
        handler.addFilter(mask_filter)


logger = logging.getLogger("autofi.main")


# ============================================================
# MODULE IMPORTS
# ============================================================

from core.agent import AutoFiAgent
from core.balance_oracle import BalanceOracle
from core.chain import SupraClient
from core.config import Settings
from core.constitution import TOPUP_LAWS, to_supra
from core.errors import ConfigurationError
from core.events import EventBus, EventType
from core.execution import ExecutionGateway
from core.intent_router import IntentRouter
from core.monitor import MonitorLoop
from core.strategy_store import StrategyStore
from api.server import create_app


# ============================================================
# WIRING
# ============================================================

def create_agent(settings: Settings) -> tuple[AutoFiAgent, MonitorLoop, SupraClient]:
    """Build the whole object graph. No network traffic happens here."""
    chain = SupraClient(
        rpc_url=settings.supra_rpc_url,
        private_key_hex=settings.supra_private_key,
        chain_id=settings.supra_chain_id,
    )
    store = StrategyStore()
    events = EventBus()
    oracle = BalanceOracle(chain)
    gateway = ExecutionGateway(
        chain,
        store,
        events,
        settings.supra_contract_address,
        confirm_delay_seconds=settings.confirm_delay_seconds,
    )
    openai_client = AsyncOpenAI(api_key=settings.openai_api_key, base_url=settings.openai_base_url)
    router = IntentRouter(openai_client, model=settings.openai_model)

    agent = AutoFiAgent(router, gateway, store, oracle, events)
    monitor = MonitorLoop(store, oracle, events, interval_seconds=settings.monitor_interval_seconds)
    return agent, monitor, chain


async def startup_checks(agent: AutoFiAgent, chain: SupraClient) -> None:
    """Account + LLM reachability. Everything here is a warning, never fatal."""
    logger.info(f"Account address: {chain.address}")
    try:
        sequence = await chain.get_sequence_number(chain.address)
        balance = await chain.get_coin_balance(chain.address)
        logger.info(f"Account validated (sequence {sequence}), balance {to_supra(balance)} SUPRA")
        if to_supra(balance) < TOPUP_LAWS.LOW_SENDER_BALANCE_WARN_SUPRA:
            logger.warning("Low balance! Consider funding with more SUPRA for automation fees.")
    except Exception as e:
        logger.warning(f"Could not validate account balance, but proceeding: {e}")

    await agent.router.verify()


# ============================================================
# INTERACTIVE CLI
# ============================================================

_THINKING = (
    "AI is analyzing your request...",
    "Processing automation strategy...",
    "Checking blockchain status...",
    "Optimizing parameters...",
)

_DETAILED_HELP = f"""
SUPRA AutoFi Agent - Detailed Help

AUTO TOP-UP STRATEGY:
Automatically maintains a minimum balance in your wallets:
  - Threshold: {to_supra(TOPUP_LAWS.THRESHOLD_MICRO):.0f} SUPRA (triggers when balance drops below)
  - Top-up Amount: {to_supra(TOPUP_LAWS.TOPUP_MICRO):.0f} SUPRA (transferred to maintain balance)
  - Monitoring: periodic balance checks every {TOPUP_LAWS.MONITOR_INTERVAL_SECONDS // 60} minutes

Strategy Creation:
  "Create auto top-up for my trading wallet 0x123..."
  "Set up automation for wallet 0xabc... for gas fees"

Monitoring & Analytics:
  "Show me my strategy performance"
  "Check health of all my strategies"

Management:
  "Cancel strategy topup_1700000000000"
  "List all my active strategies"

QUICK COMMANDS:
  create         Quick strategy creation
  analytics      Show performance dashboard
  health         Run comprehensive health check
  status         Check all strategy statuses
  strategies     List active strategies
  notifications  Show recent alerts
  performance    Show system metrics
  clear          Clear screen and show quick help
  help           Show this detailed help
  exit           Quit the agent

TIPS:
  - Use wallet addresses starting with 0x followed by 64 hex characters
  - Keep at least {TOPUP_LAWS.LOW_SENDER_BALANCE_WARN_SUPRA:.0f} SUPRA in your main account for automation fees
"""


class AutoFiCLI:
    """Line-oriented REPL. Literal commands first, everything else goes to the agent."""

    MAX_NOTIFICATIONS = 5

    def __init__(self, agent: AutoFiAgent, monitor: MonitorLoop, out=None):
        self.agent = agent
        self.monitor = monitor
        self.out = out or sys.stdout
        self.command_count = 0
        self.last_command = ""
        self.start_time = time.time()
        self.notifications: list[str] = []
        self.running = True

        self._commands = {
            "help": self.show_detailed_help, "h": self.show_detailed_help,
            "status": self.show_status, "list": self.show_status,
            "strategies": self.show_strategies,
            "analytics": self.show_analytics, "stats": self.show_analytics,
            "health": self.run_health_check, "check": self.run_health_check,
            "clear": self.clear, "cls": self.clear,
            "create": self.quick_create,
            "notifications": self.show_notifications, "alerts": self.show_notifications,
            "performance": self.show_performance_metrics, "metrics": self.show_performance_metrics,
            "exit": self.quit, "quit": self.quit, "q": self.quit,
        }
        self._subscribe()

    def _print(self, text: str = "", color: str = "") -> None:
        print(f"{color}{text}{Style.RESET_ALL}" if color else text, file=self.out)

    # ============================================================
    # NOTIFICATIONS
    # ============================================================

    def _subscribe(self) -> None:
        events = self.agent.events
        events.subscribe(
            EventType.STRATEGY_CREATED,
            lambda e: self.add_notification(f"Strategy \"{e.payload['strategy'].name}\" created successfully!"),
        )
        events.subscribe(
            EventType.STRATEGY_CREATION_FAILED,
            lambda e: self.add_notification(f"Strategy creation failed: {e.payload['error']}"),
        )
        events.subscribe(
            EventType.STRATEGY_ERROR,
            lambda e: self.add_notification(f"Strategy check failed for {e.payload['strategy_id']}: {e.payload['error']}"),
        )
        events.subscribe(
            EventType.LOW_BALANCE_ALERT,
            lambda e: self.add_notification(f"Low balance alert for strategy: {e.payload['strategy'].name}"),
        )
        events.subscribe(
            EventType.CONVERSATION_ERROR,
            lambda e: self._print(f"AI Error: {e.payload['error']}", Fore.RED),
        )

    def add_notification(self, message: str) -> None:
        self.notifications.append(message)
        self.notifications = self.notifications[-self.MAX_NOTIFICATIONS:]
        self._print(f"\n[!] {message}", Fore.BLUE)

    # ============================================================
    # DISPATCH
    # ============================================================

    async def handle_input(self, line: str) -> None:
        message = line.strip()
        if not message:
            return
        self.command_count += 1
        self.last_command = message

        command = self._commands.get(message.lower().split(" ")[0])
        if command is None:
            await self.chat(message)
            return
        result = command()
        if asyncio.iscoroutine(result):
            await result

    async def chat(self, message: str) -> None:
        self._print(random.choice(_THINKING), Fore.YELLOW)
        response = await self.agent.chat(message)
        self._print("\nSUPRA AI:", Fore.GREEN)
        self._print(self.format_response(response))
        self._print()

    @staticmethod
    def format_response(response: str) -> str:
        text = re.sub(r"\*\*(.*?)\*\*", rf"{Style.BRIGHT}\1{Style.NORMAL}", response)
        text = re.sub(r"`(.*?)`", rf"{Fore.CYAN}\1{Fore.RESET}", text)
        text = re.sub(r"(\d+\.?\d*)\s*SUPRA", rf"{Fore.GREEN}\1 SUPRA{Fore.RESET}", text, flags=re.IGNORECASE)
        return re.sub(r"(0x[a-fA-F0-9]{8,})", rf"{Fore.CYAN}\1{Fore.RESET}", text)

    # ============================================================
    # COMMANDS
    # ============================================================

    def show_welcome(self) -> None:
        self._print("=" * 47, Fore.MAGENTA)
        self._print("           SUPRA AutoFi AGENT", Fore.MAGENTA)
        self._print("=" * 47, Fore.MAGENTA)
        self._print("- Create intelligent auto top-up strategies", Fore.MAGENTA)
        self._print("- Monitor performance with real-time analytics", Fore.MAGENTA)
        self._print("- Secure automation on Supra MoveVM\n", Fore.MAGENTA)

    def show_quick_help(self) -> None:
        self._print("Quick Start Commands:", Fore.GREEN)
        for name, text in (
            ("create", "Create new auto top-up strategy"),
            ("analytics", "View performance dashboard"),
            ("health", "Check strategy health"),
            ("status", "Show all strategies"),
            ("help", "Show detailed help"),
            ("exit", "Quit agent\n"),
        ):
            self._print(f"{Fore.CYAN}{name}{Style.RESET_ALL} - {text}")
        self._print("Natural Language Examples:", Fore.GREEN)
        self._print('"Create auto top-up for my wallet 0x123..."')
        self._print('"Show me my strategy performance"\n')

    def show_detailed_help(self) -> None:
        self._print(_DETAILED_HELP, Fore.BLUE)

    def clear(self) -> None:
        print("\033[2J\033[H", end="", file=self.out)
        self.show_quick_help()

    async def quick_create(self) -> None:
        self._print("\nQuick Strategy Creation", Fore.CYAN)
        self._print('Tip: You can also say "Create auto top-up for my wallet 0x..." naturally\n')
        await self.chat("I want to create a new auto top-up strategy. Can you help me?")

    async def show_status(self) -> None:
        self._print("Checking strategy status...", Fore.BLUE)
        result = await self.agent.check_strategy_status()
        if not result["strategies"]:
            self._print("   No active strategies")
        for entry in result["strategies"]:
            health = entry["health_status"]
            placeholder = " (placeholder)" if entry["balance_is_placeholder"] else ""
            self._print(
                f"   {entry['id']}  {entry['name']}  {entry['balance_in_supra']:.2f} SUPRA{placeholder}  "
                f"{health['status']} ({health['urgency']})"
            )
        self._print(f"Overall health: {result['summary']['overall_health']}\n", Fore.GREEN)

    def show_strategies(self) -> None:
        self._print("Loading your strategies...", Fore.BLUE)
        result = self.agent.list_active_strategies()
        if not result["count"]:
            self._print("   No active strategies")
        for s in result["strategies"]:
            self._print(
                f"   {s['id']}  {s['name']}  [{s['mode']}]  target={s['parameters']['target']}  "
                f"executions={s['execution_count']}  success={s['success_rate'] * 100:.1f}%"
            )
        self._print()

    def show_analytics(self) -> None:
        self._print("Generating analytics dashboard...", Fore.BLUE)
        analytics = self.agent.generate_analytics()["analytics"]
        overview, performance = analytics["overview"], analytics["performance"]
        self._print("\nAnalytics Dashboard (24h):", Fore.CYAN)
        self._print(f"Strategies: {overview['active_strategies']} active / {overview['total_strategies']} total")
        self._print(f"Executions: {overview['total_executions']}")
        self._print(f"Average Success Rate: {overview['average_success_rate'] * 100:.1f}%")
        self._print(f"Value Transferred: {overview['total_value_transferred']:.2f} SUPRA")
        self._print(
            f"Healthy / Warning / Critical: {performance['healthy_strategies']} / "
            f"{performance['warning_strategies']} / {performance['critical_strategies']}"
        )
        self._print(f"Estimated Monthly Cost: {analytics['costs']['estimated_monthly_cost']} SUPRA\n")

    async def run_health_check(self) -> None:
        self._print("Running comprehensive health check...", Fore.BLUE)
        metrics = self.agent.get_performance_metrics()
        self._print("\nSystem Health Report:", Fore.GREEN)
        self._print(f"Active Strategies: {metrics['active_strategies']}")
        self._print(f"Success Rate: {metrics['average_success_rate'] * 100:.1f}%")
        self._print(f"Uptime: {metrics['uptime_minutes']:.1f} minutes")
        self._print(f"Conversations: {metrics['total_conversations']}")
        summary = (await self.agent.check_strategy_status())["summary"]
        self._print(
            f"Healthy: {summary['healthy_strategies']}  Approaching: {summary['approaching_strategies']}  "
            f"Needs top-up: {summary['strategies_needing_topup']}  Overall: {summary['overall_health']}\n"
        )

    def show_notifications(self) -> None:
        self._print("\nRecent Notifications:", Fore.YELLOW)
        if not self.notifications:
            self._print("   No recent notifications")
        for i, note in enumerate(self.notifications, 1):
            self._print(f"   {i}. {note}")
        self._print()

    def show_performance_metrics(self) -> None:
        metrics = self.agent.get_performance_metrics()
        session = int(time.time() - self.start_time)
        self._print("\nPerformance Metrics:", Fore.CYAN)
        self._print(f"Commands Executed: {self.command_count}")
        self._print(f"AI Conversations: {metrics['total_conversations']}")
        self._print(f"Strategies Created: {metrics['total_strategies_created']}")
        self._print(f"Active Strategies: {metrics['active_strategies']}")
        self._print(f"Success Rate: {metrics['average_success_rate'] * 100:.1f}%")
        self._print(f"Session Time: {session}s")
        self._print(f"Monitor Passes: {self.monitor.pass_count}")
        self._print(f"Agent Uptime: {metrics['uptime_minutes']:.1f} minutes\n")

    def quit(self) -> None:
        self.running = False

    def shutdown_summary(self) -> None:
        metrics = self.agent.get_performance_metrics()
        self._print("\nThank you for using SUPRA AutoFi Agent!", Fore.CYAN)
        self._print("Session Summary:")
        self._print(f"   - Commands executed: {self.command_count}")
        self._print(f"   - Session duration: {int(time.time() - self.start_time)}s")
        self._print(f"   - Last command: {self.last_command or 'none'}")
        self._print(f"   - Strategies created: {metrics['total_strategies_created']}")
        self._print(f"   - Active strategies: {metrics['active_strategies']}")
        self._print("\nYour automation strategies continue running on Supra Network")

    def prompt(self) -> str:
        prefix = f"[{self.command_count}] " if self.command_count else ""
        return f"{Fore.CYAN}{prefix}YOU > {Style.RESET_ALL}"


async def run_cli(settings: Settings) -> None:
    agent, monitor, chain = create_agent(settings)
    cli = AutoFiCLI(agent, monitor)
    cli.show_welcome()
    await startup_checks(agent, chain)
    cli._print("Agent ready! Start chatting about auto top-up strategies\n", Fore.GREEN)
    cli.show_quick_help()

    monitor.start()
    try:
        while cli.running:
            try:
                line = await asyncio.to_thread(input, cli.prompt())
            except EOFError:
                break
            await cli.handle_input(line)
    finally:
        await monitor.stop()
        await chain.close()
        cli.shutdown_summary()


# ============================================================
# HTTP SERVER
# ============================================================

def create_autofi_app(settings: Settings):
    agent, monitor, chain = create_agent(settings)

    @asynccontextmanager
    async def lifespan(app):
        """Startup and shutdown."""
        logger.info("=" * 60)
        logger.info("Supra AutoFi Agent is starting...")
        logger.info("=" * 60)
        await startup_checks(agent, chain)
        monitor.start()
        yield
        await monitor.stop()
        await chain.close()
        logger.info("Supra AutoFi Agent stopped")

    app = create_app(agent=agent, monitor=monitor, chain=chain)
    # Replace the default lifespan with ours
    app.router.lifespan_context = lifespan
    return app


def _print_troubleshooting(error: ConfigurationError) -> None:
    print(f"{Fore.RED}Initialization failed: {error}{Style.RESET_ALL}", file=sys.stderr)
    for name in error.missing:
        print(f"{Fore.RED}   - {name}{Style.RESET_ALL}", file=sys.stderr)
    print(f"{Fore.YELLOW}\nTroubleshooting tips:{Style.RESET_ALL}", file=sys.stderr)
    for tip in (
        "Check your .env file exists and has all required variables",
        "Verify your SUPRA_PRIVATE_KEY is valid (64 hex characters)",
        "Ensure you have sufficient SUPRA balance (min 1000 SUPRA)",
        "Check your internet connection",
    ):
        print(f"  - {tip}", file=sys.stderr)


# ============================================================
# ENTRY POINT
# ============================================================

def main(argv: Optional[list[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    color_init(autoreset=True)
    try:
        settings = Settings.from_env()
    except ConfigurationError as e:
        _print_troubleshooting(e)
        return 1

    setup_logging(settings.log_level)

    if argv and argv[0] == "serve":
        app = create_autofi_app(settings)
        logger.info(f"Starting server on {settings.host}:{settings.port}")
        uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
        return 0

    try:
        asyncio.run(run_cli(settings))
    except KeyboardInterrupt:
        print(f"{Fore.BLUE}\nShutting down gracefully...{Style.RESET_ALL}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
