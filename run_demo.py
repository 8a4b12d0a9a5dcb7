"""
End-to-end demo of the monitoring engine.

This script walks through:
1. Configuration loading
2. A monitoring session with live synthetic vitals
3. An SOS trigger, countdown and resolution
4. A system test of the alarm
5. Missed-dose detection
6. The caregiver notification channel test

Timings are shortened so the whole run takes a few seconds.

Run with: uv run python run_demo.py
"""

import asyncio

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from smartsos.config import AppConfig, configure_logging, get_config
from smartsos.domain.models import AlertLevel, MedicationSpec, SOSKind
from smartsos.services.monitoring_engine import MonitoringEngine

console = Console()


def demo_config() -> AppConfig:
    config = get_config()
    return config.model_copy(
        update={
            "monitoring": config.monitoring.model_copy(
                update={
                    "vitals_interval_seconds": 0.2,
                    "compliance_interval_seconds": 0.3,
                    "countdown_tick_seconds": 0.1,
                    "insight_delay_seconds": 0.1,
                }
            )
        }
    )


def show_vitals(engine: MonitoringEngine, title: str) -> None:
    state = engine.state
    table = Table(title=title)
    table.add_column("Channel", style="cyan")
    table.add_column("Value", style="white")
    table.add_column("Trend", style="magenta")

    table.add_row("Heart Rate", f"{state.heart_rate.value:.0f} BPM", state.heart_rate.trend.value)
    table.add_row(
        "Blood Pressure",
        f"{state.blood_pressure.systolic}/{state.blood_pressure.diastolic} mmHg",
        "-",
    )
    table.add_row("SpO2", f"{state.oxygen_level.value:.1f} %", state.oxygen_level.trend.value)
    table.add_row(
        "Temperature", f"{state.temperature.value:.1f} °F", state.temperature.trend.value
    )
    console.print(table)
    console.print(
        f"Status: {state.status.value}",
        style="red" if state.status == AlertLevel.CRITICAL else "green",
    )


async def demo_vitals(engine: MonitoringEngine) -> bool:
    console.print(Panel("💓 Live Vitals", style="blue"))
    await asyncio.sleep(1.0)
    show_vitals(engine, "Stable Patient")
    return engine.state.status == AlertLevel.STABLE


async def demo_sos(engine: MonitoringEngine) -> bool:
    console.print(Panel("🚨 SOS Protocol", style="blue"))
    engine.trigger_sos(SOSKind.CARDIAC)
    console.print(f"Countdown started at {engine.countdown}", style="yellow")

    await asyncio.sleep(0.6)
    show_vitals(engine, "Critical Patient")
    console.print(f"Countdown now {engine.countdown}", style="yellow")

    resolved = engine.resolve()
    await engine.drain()
    console.print(f"Resolved: {resolved}", style="green" if resolved else "red")
    if engine.insight:
        console.print(f"Insight: {engine.insight.content}", style="cyan")
    return resolved and engine.state.status == AlertLevel.STABLE


async def demo_system_test(engine: MonitoringEngine) -> bool:
    console.print(Panel("🔔 Alarm System Test", style="blue"))
    engine.run_system_test()
    console.print(f"Test countdown: {engine.countdown}", style="yellow")
    await asyncio.sleep(0.3)
    return engine.resolve() and engine.state.status == AlertLevel.STABLE


async def demo_medications(engine: MonitoringEngine) -> bool:
    console.print(Panel("💊 Medication Compliance", style="blue"))
    engine.add_medication(MedicationSpec(name="Vitamin D", dosage="1000IU", scheduled_time="00:00"))
    await asyncio.sleep(0.5)

    table = Table(title="Medications")
    table.add_column("Name", style="cyan")
    table.add_column("Time", style="white")
    table.add_column("Taken", style="green")
    table.add_column("Reminder Sent", style="yellow")
    for med in engine.state.medications:
        table.add_row(med.name, med.scheduled_time, str(med.taken), str(med.reminder_sent))
    console.print(table)

    return any(m.name == "Vitamin D" and m.reminder_sent for m in engine.state.medications)


async def demo_notification_channel(engine: MonitoringEngine) -> bool:
    console.print(Panel("📨 Caregiver Channel", style="blue"))
    delivered = await engine.test_notification_channel()
    if not delivered:
        console.print(
            "💡 Set a Telegram bot token and chat id with update_profile() to deliver messages",
            style="yellow",
        )
    # An unconfigured channel is reported, not crashed on.
    return engine.notifications[0].title in {"Telegram Bot", "Connection Failed"}


async def main() -> None:
    console.print(Panel.fit("🏥 SmartSOS Monitoring Demo", style="bold blue"))

    config = demo_config()
    configure_logging(config.logging.model_copy(update={"level": "WARNING"}))
    console.print(f"Environment: {config.environment}")
    console.print(
        "Insight model: "
        + (config.insight.model_name if config.insight.openai_api_key else "canned fallback")
    )

    engine = MonitoringEngine(config)
    results = {}
    async with engine.session():
        results["Vitals"] = await demo_vitals(engine)
        results["SOS Protocol"] = await demo_sos(engine)
        results["System Test"] = await demo_system_test(engine)
        results["Medications"] = await demo_medications(engine)
        results["Notification Channel"] = await demo_notification_channel(engine)

        log_table = Table(title="Emergency Log")
        log_table.add_column("Kind", style="cyan")
        log_table.add_column("Resolved", style="white")
        log_table.add_column("Notes", style="white")
        for entry in engine.state.logs:
            log_table.add_row(entry.kind.value, str(entry.resolved), entry.notes)
        console.print(log_table)

    summary = Table(title="Demo Summary")
    summary.add_column("Step", style="cyan")
    summary.add_column("Result", style="white")
    for step, ok in results.items():
        summary.add_row(step, "✅ PASS" if ok else "❌ FAIL")
    console.print(summary)


if __name__ == "__main__":
    asyncio.run(main())
