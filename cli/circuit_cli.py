#!/usr/bin/env python3
"""
Spike Circuit CLI Tool with Rich Styling
Interactive shell over the simulation core: build circuits, tick them and
inspect entity state.
"""

import argparse
import functools
import signal
import sys
import time
import traceback
from typing import Any, Dict, List, Optional

from loguru import logger
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

# Prompt toolkit for autocomplete and history
from prompt_toolkit import PromptSession
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.history import FileHistory, InMemoryHistory

from spikecircuit.config import SimulationSettings, load_settings
from spikecircuit.entity import VALID_LOG_LEVELS, EntityKind, setup_circuit_logger
from spikecircuit.presets import GATE_KINDS, PRESETS
from spikecircuit.sim_core import SimulationCore

# Fields whose values stay text; everything else is numeric
TEXT_FIELDS = {"kind", "plasticity_mode", "label"}
INT_FIELDS = {"refractory_period", "pulse_duration"}

KIND_ALIASES = {
    "neuron": EntityKind.NEURON,
    "generator": EntityKind.GENERATOR,
    "stimulator": EntityKind.GENERATOR,
    "pulse_emitter": EntityKind.PULSE_EMITTER,
    "button": EntityKind.PULSE_EMITTER,
    "output_sink": EntityKind.OUTPUT_SINK,
    "output": EntityKind.OUTPUT_SINK,
}


def parse_value(name: str, raw: str) -> Any:
    """Parse a command-line parameter value for the named field."""
    if name in TEXT_FIELDS:
        return raw
    if name in INT_FIELDS:
        return int(float(raw))
    return float(raw)


def parse_assignments(args: List[str]) -> Dict[str, Any]:
    """Turn ``name=value`` tokens into a parameter dict.

    Raises:
        ValueError: On a token without '=' or a non-numeric numeric value.
    """
    params = {}
    for token in args:
        if "=" not in token:
            raise ValueError(f"Expected name=value, got '{token}'")
        name, raw = token.split("=", 1)
        params[name.strip()] = parse_value(name.strip(), raw.strip())
    return params


def timed_command(func):
    """Decorator to print command execution time if timing is enabled."""

    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        if not self.timing_enabled:
            return func(self, *args, **kwargs)
        start = time.perf_counter()
        result = func(self, *args, **kwargs)
        elapsed = time.perf_counter() - start
        self.console.print(f"[dim]Command execution time: {elapsed:.4f} seconds[/dim]")
        return result

    return wrapper


class CircuitCLI:
    """
    Command-line interface for spike circuit operations
    """

    def __init__(
        self,
        settings: Optional[SimulationSettings] = None,
        console: Optional[Console] = None,
    ):
        self.settings = settings if settings is not None else SimulationSettings()
        self.console = console if console is not None else Console()
        self.core = SimulationCore(self.settings)
        self.running = True
        self.timing_enabled = False
        self.session = None

        # Command mapping
        self.commands = {
            "help": self.cmd_help,
            "h": self.cmd_help,
            "tick": self.cmd_tick,
            "nticks": self.cmd_n_ticks,
            "start": self.cmd_start_time,
            "stop": self.cmd_stop_time,
            "preset": self.cmd_preset,
            "gate": self.cmd_gate,
            "import": self.cmd_import_circuit,
            "export": self.cmd_export_circuit,
            "add": self.cmd_add,
            "del": self.cmd_delete,
            "connect": self.cmd_connect,
            "set": self.cmd_set,
            "trigger": self.cmd_trigger,
            "get": self.cmd_get,
            "state": self.cmd_detailed_state,
            "status": self.cmd_status,
            "log_level": self.cmd_set_log_level,
            "reset": self.cmd_reset,
            "toggle_timing": self.cmd_toggle_timing,
            "exit": self.cmd_exit,
            "quit": self.cmd_exit,
        }

    def setup_prompt(self):
        """Set up autocomplete and history for the prompt"""
        words = [
            *self.commands,
            *PRESETS,
            *GATE_KINDS,
            *KIND_ALIASES,
            *VALID_LOG_LEVELS,
        ]
        self.completer = WordCompleter(words, ignore_case=True, sentence=False)

        try:
            self.history = FileHistory(self.settings.cli_history_file)
        except OSError:
            self.history = InMemoryHistory()

        self.session = PromptSession(history=self.history, completer=self.completer)

    def print_header(self):
        """Print application header"""
        header = Panel(
            "[bold cyan]Spike Circuit CLI[/bold cyan]\n"
            "Type 'help' for available commands, 'exit' to quit\n"
            "[dim]Use TAB for autocomplete, ↑↓ arrows for history[/dim]",
            style="blue",
            expand=False,
        )
        self.console.print(header)
        self.console.print()

    def print_status(self):
        """Print current circuit status"""
        state = self.core.get_network_state()
        core_state = state["core"]
        stats = state["network_stats"]

        if core_state["is_running"]:
            status_text = (
                f"[green]●[/green] Running at {core_state['frame_rate']:.0f} fps × "
                f"{core_state['ticks_per_frame']}"
            )
        else:
            status_text = "[yellow]●[/yellow] Stopped"

        spiking = [nid for nid, n in state["neurons"].items() if n["spiked"]]
        active_sinks = [sid for sid, s in state["sinks"].items() if s["active"]]

        self.console.print(
            f"{status_text} | "
            f"Tick: [cyan]{core_state['current_tick']}[/cyan] | "
            f"Neurons: [cyan]{stats['num_neurons']}[/cyan] | "
            f"Spiking: [bright_red]{len(spiking)}[/bright_red]"
        )
        self.console.print(
            f"[dim]Synapses:[/dim] [magenta]{stats['num_synapses']}[/magenta] | "
            f"[dim]Sources:[/dim] [blue]{stats['num_generators'] + stats['num_pulse_emitters']}[/blue] | "
            f"[dim]Outputs:[/dim] [green]{len(active_sinks)}/{stats['num_output_sinks']} active[/green] | "
            f"[dim]Graph Density:[/dim] [yellow]{stats['graph_density']:.2%}[/yellow]"
        )

    def dispatch(self, user_input: str) -> None:
        """Parse and execute one command line"""
        parts = user_input.split()
        if not parts:
            return
        command = parts[0].lower()
        args = parts[1:]

        if command not in self.commands:
            self.console.print(f"[red]Unknown command: {command}[/red]")
            self.console.print(
                "Type 'help' for available commands or use TAB for autocomplete"
            )
            return

        try:
            self.commands[command](args)
        except ValueError as e:
            self.console.print(f"[red]Invalid input: {e}[/red]")

    def run(self):
        """Main command loop"""
        self.setup_prompt()
        self.print_header()

        while self.running:
            try:
                self.print_status()

                try:
                    user_input = self.session.prompt("\n> ").strip()
                except (EOFError, KeyboardInterrupt):
                    self.console.print("\n[yellow]Exiting...[/yellow]")
                    self.cmd_exit()
                    break

                if user_input == "":
                    continue

                try:
                    self.dispatch(user_input)
                except KeyboardInterrupt:
                    self.console.print("\n[yellow]Command interrupted[/yellow]")

                self.console.print()  # Add spacing

            except Exception as e:
                self.console.print(f"[red]Unexpected error: {e}[/red]")
                self.console.print(f"[red]Traceback: {traceback.format_exc()}[/red]")
                self.cmd_exit()

    def _require(self, args: List[str], count: int, usage: str) -> bool:
        if len(args) < count:
            self.console.print(f"[red]Usage: {escape(usage)}[/red]")
            return False
        return True

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @timed_command
    def cmd_help(self, args=None):
        """Show help information"""
        commands_info = [
            ("help, h", "Show this help message"),
            ("", ""),
            ("== Time ==", ""),
            ("tick", "Execute single tick"),
            ("nticks N", "Execute N ticks"),
            ("start [FPS] [TICKS_PER_FRAME]", "Start automatic time flow"),
            ("stop", "Stop automatic time flow"),
            ("reset", "Reset dynamic state, keep the circuit"),
            ("", ""),
            ("== Circuits ==", ""),
            ("preset NAME", f"Load a preset ({', '.join(PRESETS)})"),
            ("gate KIND X Y", f"Add a logic gate ({', '.join(GATE_KINDS)})"),
            ("import PATH", "Import circuit from JSON file"),
            ("export PATH", "Export circuit to JSON file"),
            ("", ""),
            ("== Editing ==", ""),
            ("add KIND [name=value ...]", "Add neuron/generator/button/output (x=, y= set position)"),
            ("del ID", "Delete an entity and its synapses"),
            ("connect SRC TGT [name=value ...]", "Create a synapse"),
            ("set ID NAME VALUE", "Change one parameter"),
            ("trigger ID", "Fire a pulse emitter"),
            ("", ""),
            ("== Inspection ==", ""),
            ("get ID", "Show one entity"),
            ("state", "Show every entity"),
            ("status", "Show circuit status"),
            ("", ""),
            ("== System ==", ""),
            ("log_level [LEVEL]", "Set logging level"),
            ("toggle_timing", "Toggle command execution timing display on/off"),
            ("exit, quit", "Exit the application"),
        ]

        help_table = Table(title="Spike Circuit CLI Commands", show_header=False)
        help_table.add_column("Command", style="cyan", min_width=35)
        help_table.add_column("Description", style="white")

        for cmd, desc in commands_info:
            if cmd == "":
                help_table.add_row("", "")
            elif cmd.startswith("=="):
                help_table.add_row(f"[bold yellow]{cmd}[/bold yellow]", "")
            else:
                help_table.add_row(escape(cmd), desc)

        self.console.print(help_table)
        self.console.print("[dim]Examples:[/dim]")
        self.console.print("  [green]preset oscillator[/green]")
        self.console.print("  [green]add generator kind=square frequency=0.5[/green]")
        self.console.print("  [green]connect 1 2 weight=-0.8 plasticity_mode=stdp[/green]")

    @timed_command
    def cmd_tick(self, args=None):
        """Execute single tick"""
        result = self.core.do_tick()
        self._print_tick(result)

    def _print_tick(self, result: Dict[str, Any]) -> None:
        line = f"[green]Tick {result['tick']} completed[/green]"
        if result["fired_neurons"]:
            line += f" | [bright_red]Spikes: {result['fired_neurons']}[/bright_red]"
        if result["sink_rising_edges"]:
            line += f" | [yellow]Outputs on: {result['sink_rising_edges']}[/yellow]"
        if result["plasticity_events"]:
            line += f" | [magenta]Learning events: {len(result['plasticity_events'])}[/magenta]"
        self.console.print(line)

    @timed_command
    def cmd_n_ticks(self, args=None):
        """Run multiple ticks"""
        if not self._require(args, 1, "nticks N"):
            return
        n_ticks = int(args[0])
        if n_ticks <= 0:
            self.console.print("[red]Number of ticks must be positive[/red]")
            return

        results = self.core.do_n_ticks(n_ticks)
        active_ticks = sum(1 for r in results if r["total_activity"] > 0)
        total_spikes = sum(r["total_activity"] for r in results)
        learning = sum(len(r["plasticity_events"]) for r in results)

        self.console.print(f"[green]✓[/green] Completed {len(results)} ticks")
        if active_ticks > 0:
            self.console.print(
                f"[cyan]{total_spikes} spikes in {active_ticks} ticks[/cyan]"
            )
        if learning:
            self.console.print(f"[magenta]{learning} learning events[/magenta]")

    @timed_command
    def cmd_start_time(self, args=None):
        """Start autonomous time flow"""
        frame_rate = float(args[0]) if args else None
        ticks_per_frame = int(args[1]) if args and len(args) > 1 else None
        if self.core.start_time_flow(frame_rate, ticks_per_frame):
            self.console.print(
                f"[green]Time flow started at {self.core.state.frame_rate} fps, "
                f"{self.core.state.ticks_per_frame} ticks/frame[/green]"
            )
        else:
            self.console.print("[yellow]Time flow already running or invalid rate[/yellow]")

    @timed_command
    def cmd_stop_time(self, args=None):
        """Stop autonomous time flow"""
        if self.core.stop_time_flow():
            self.console.print("[green]Time flow stopped[/green]")
        else:
            self.console.print("[yellow]Time flow not running[/yellow]")

    @timed_command
    def cmd_preset(self, args=None):
        """Load a preset circuit"""
        if not self._require(args, 1, f"preset {{{'|'.join(PRESETS)}}}"):
            return
        if self.core.load_preset(args[0]):
            self.console.print(f"[green]Preset '{args[0]}' loaded[/green]")
        else:
            self.console.print(f"[red]Unknown preset: {args[0]}[/red]")

    @timed_command
    def cmd_gate(self, args=None):
        """Spawn a logic gate template"""
        if not self._require(args, 1, "gate KIND [X Y]"):
            return
        x = float(args[1]) if len(args) > 1 else 0.0
        y = float(args[2]) if len(args) > 2 else 0.0
        created = self.core.spawn_gate(args[0], x, y)
        if created is None:
            self.console.print(f"[red]Unknown gate: {args[0]}[/red]")
            return
        self.console.print(
            f"[green]{args[0].upper()} gate: neurons {created['neurons']}, "
            f"synapses {created['synapses']}[/green]"
        )

    @timed_command
    def cmd_import_circuit(self, args=None):
        """Import circuit from file"""
        path = args[0] if args else Prompt.ask("Circuit file", default="circuit.json")
        if self.core.import_circuit(path):
            self.console.print(f"[green]Circuit imported from {path}[/green]")
        else:
            self.console.print(f"[red]Failed to import circuit from {path}[/red]")

    @timed_command
    def cmd_export_circuit(self, args=None):
        """Export circuit to file"""
        path = args[0] if args else Prompt.ask("Circuit file", default="circuit.json")
        if self.core.export_circuit(path):
            self.console.print(f"[green]Circuit exported to {path}[/green]")
        else:
            self.console.print(f"[red]Failed to export circuit to {path}[/red]")

    @timed_command
    def cmd_add(self, args=None):
        """Add a node entity"""
        if not self._require(args, 1, "add KIND [name=value ...]"):
            return
        kind = KIND_ALIASES.get(args[0].lower())
        if kind is None:
            self.console.print(
                f"[red]Unknown kind: {args[0]}. Use one of {', '.join(KIND_ALIASES)}[/red]"
            )
            return

        params = parse_assignments(args[1:])
        position = (params.pop("x", 0.0), params.pop("y", 0.0))
        entity = self.core.create(kind, params or None, position)
        if entity is None:
            self.console.print("[red]Invalid parameters, nothing created[/red]")
        else:
            self.console.print(f"[green]Created {kind.value} {entity.id}[/green]")

    @timed_command
    def cmd_delete(self, args=None):
        """Delete an entity"""
        if not self._require(args, 1, "del ID"):
            return
        if self.core.destroy(int(args[0])):
            self.console.print(f"[green]Deleted {args[0]}[/green]")
        else:
            self.console.print(f"[red]No entity {args[0]}[/red]")

    @timed_command
    def cmd_connect(self, args=None):
        """Create a synapse"""
        if not self._require(args, 2, "connect SRC TGT [name=value ...]"):
            return
        params = parse_assignments(args[2:])
        synapse = self.core.connect(int(args[0]), int(args[1]), **params)
        if synapse is None:
            self.console.print(
                "[yellow]No synapse created (missing endpoint, wrong kinds, "
                "existing edge or invalid parameters)[/yellow]"
            )
        else:
            self.console.print(
                f"[green]Synapse {synapse.id}: {args[0]} -> {args[1]}, "
                f"weight={synapse.weight:.3f}[/green]"
            )

    @timed_command
    def cmd_set(self, args=None):
        """Set one parameter"""
        if not self._require(args, 3, "set ID NAME VALUE"):
            return
        entity_id, name = int(args[0]), args[1]
        value = args[2] if name in TEXT_FIELDS else float(args[2])
        if self.core.set_parameter(entity_id, name, value):
            self.console.print(f"[green]{name} updated on {entity_id}[/green]")
        else:
            self.console.print(f"[red]Could not set {name} on {entity_id}[/red]")

    @timed_command
    def cmd_trigger(self, args=None):
        """Trigger a pulse emitter"""
        if not self._require(args, 1, "trigger ID"):
            return
        if self.core.trigger(int(args[0])):
            self.console.print(f"[green]Pulse emitter {args[0]} triggered[/green]")
        else:
            self.console.print(f"[red]{args[0]} is not a pulse emitter[/red]")

    @timed_command
    def cmd_get(self, args=None):
        """Show one entity"""
        if not self._require(args, 1, "get ID"):
            return
        snapshot = self.core.get_entity(int(args[0]))
        if snapshot is None:
            self.console.print(f"[red]No entity {args[0]}[/red]")
            return

        table = Table(title=f"Entity {args[0]}", show_header=True)
        table.add_column("Property", style="cyan")
        table.add_column("Value", style="white")
        for key, value in snapshot.items():
            if key == "history":
                recent = ", ".join(f"{v:.3f}" for v in value[-5:])
                table.add_row("history (last 5)", recent)
            elif isinstance(value, dict):
                for sub_key, sub_value in value.items():
                    table.add_row(f"{key}.{sub_key}", str(sub_value))
            elif isinstance(value, float):
                table.add_row(key, f"{value:.4f}")
            else:
                table.add_row(key, str(value))
        self.console.print(table)

    @timed_command
    def cmd_detailed_state(self, args=None):
        """Show detailed state"""
        state = self.core.get_network_state()

        neuron_table = Table(title="Neurons", show_header=True)
        for column in ("ID", "Voltage", "Spiked", "Refractory", "Rate", "θ"):
            neuron_table.add_column(column)
        for nid, n in state["neurons"].items():
            neuron_table.add_row(
                str(nid),
                f"{n['voltage']:.3f}",
                "[bright_red]●[/bright_red]" if n["spiked"] else "",
                str(n["refractory"]),
                f"{n['firing_rate']:.4f}",
                f"{n['theta']:.2e}",
            )
        self.console.print(neuron_table)

        if state["sources"] or state["sinks"]:
            io_table = Table(title="Sources & Outputs", show_header=True)
            for column in ("ID", "Kind", "Value", "Active"):
                io_table.add_column(column)
            for sid, s in state["sources"].items():
                io_table.add_row(str(sid), s["kind"], f"{s['output']:.3f}", "")
            for sid, s in state["sinks"].items():
                io_table.add_row(
                    str(sid),
                    f"{s['kind']} '{s['label']}'",
                    f"{s['input']:.3f}",
                    "[green]●[/green]" if s["active"] else "",
                )
            self.console.print(io_table)

        synapse_table = Table(title="Synapses", show_header=True)
        for column in ("ID", "Edge", "Weight", "g", "Mode"):
            synapse_table.add_column(column)
        for sid, s in state["synapses"].items():
            synapse_table.add_row(
                str(sid),
                f"{s['source']} -> {s['target']}",
                f"{s['weight']:.3f}",
                f"{s['conductance']:.3f}",
                s["params"]["plasticity_mode"],
            )
        self.console.print(synapse_table)

    @timed_command
    def cmd_status(self, args=None):
        """Show current status"""
        self.print_status()

    @timed_command
    def cmd_set_log_level(self, args=None):
        """Set log level"""
        if args:
            selected_level = args[0].upper()
        else:
            selected_level = Prompt.ask(
                "Log level", choices=list(VALID_LOG_LEVELS), default="INFO"
            ).upper()

        if self.core.set_log_level(selected_level):
            self.console.print(f"[green]Log level set to: {selected_level}[/green]")
            if selected_level in ["TRACE", "DEBUG"]:
                self.console.print(
                    "[dim]Note: Debug/trace messages will now be visible[/dim]"
                )
        else:
            self.console.print(f"[red]Invalid log level: {selected_level}[/red]")

    @timed_command
    def cmd_reset(self, args=None):
        """Reset dynamic state"""
        self.core.reset()
        self.console.print("[green]Simulation reset to tick 0[/green]")

    def cmd_toggle_timing(self, args=None):
        """Toggle command timing display"""
        self.timing_enabled = not self.timing_enabled
        status = "enabled" if self.timing_enabled else "disabled"
        self.console.print(f"[green]Command timing is now {status}[/green]")

    def cmd_exit(self, args=None):
        """Exit application"""
        self.running = False
        if self.core.state.is_running:
            self.core.stop_time_flow()
        self.console.print("[bold cyan]Goodbye![/bold cyan]")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="spikecircuit-cli",
        description="Interactive shell for spiking-neuron circuits",
    )
    parser.add_argument("--config", help="YAML settings file")
    parser.add_argument("--circuit", help="JSON circuit to import at start-up")
    parser.add_argument("--preset", choices=sorted(PRESETS), help="Preset to load")
    return parser


def main(argv: Optional[List[str]] = None):
    """Main entry point"""
    args = build_parser().parse_args(argv)

    def handle_sigint(sig, frame):
        """Handle Ctrl+C gracefully"""
        console = Console()
        console.print("\n[yellow]Interrupted. Type 'exit' or 'quit' to exit.[/yellow]")

    signal.signal(signal.SIGINT, handle_sigint)

    try:
        settings = load_settings(args.config) if args.config else SimulationSettings()
    except (OSError, ValueError, ValidationError) as e:
        Console().print(f"[bold red]Invalid settings: {e}[/bold red]")
        sys.exit(2)

    overrides = {}
    if args.preset:
        overrides["preset"] = args.preset
    if args.circuit:
        overrides["circuit_path"] = args.circuit
    if overrides:
        settings = settings.model_copy(update=overrides)

    setup_circuit_logger(settings.log_level)
    logger.debug(f"Starting shell with settings: {settings}")

    try:
        cli = CircuitCLI(settings)
        cli.run()
    except Exception as e:
        console = Console()
        console.print(f"[bold red]A critical error occurred: {e}[/bold red]")
        console.print(f"[red]{traceback.format_exc()}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
