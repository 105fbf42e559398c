#!/usr/bin/env python3
"""
saitek-panels - Command Line Interface

Entry point for the saitek-panels package.
"""

import argparse
import dataclasses
import logging
import sys

from saitek_panels.__version__ import __version__

GEAR_CHOICES = ("up", "down", "transition", "off")


def _setup_logging(verbose=0):
    """Configure logging from -v count (filter out noisy PIL)."""
    if verbose >= 2:
        logging.basicConfig(level=logging.DEBUG, format='[%(levelname)s] %(name)s: %(message)s')
        logging.getLogger('PIL').setLevel(logging.WARNING)
    elif verbose == 1:
        logging.basicConfig(level=logging.INFO, format='[%(levelname)s] %(message)s')
    else:
        logging.basicConfig(level=logging.WARNING)


def _int_auto(text):
    """argparse type: '5', '0x05' or '0b101'."""
    try:
        return int(text, 0)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {text!r}")


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="saitek-panels",
        description="Saitek Pro Flight Radio/Multi/Switch/FIP panel driver",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    saitek-panels detect                          List attached panels
    saitek-panels radio --com1a 118.00 --com1s 121.50
    saitek-panels multi --top 250 --bottom 3000 --leds 0x01
    saitek-panels switch --gear down              Three greens
    saitek-panels fip --pattern bars              Colour bars on the FIP
    saitek-panels watch switch --count 10         Print input events
    saitek-panels --mock serve --port 8080        HTTP API without hardware
        """
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v, -vv)"
    )
    parser.add_argument(
        "--mock",
        action="store_true",
        help="Use the mock transport (no hardware, writes are logged)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Detect command
    subparsers.add_parser("detect", help="List attached panels and USB backends")

    # Radio command
    radio_parser = subparsers.add_parser("radio", help="Set Radio panel frequencies")
    radio_parser.add_argument("--com1a", default="", help="COM1 active (e.g. 118.00)")
    radio_parser.add_argument("--com1s", default="", help="COM1 standby")
    radio_parser.add_argument("--com2a", default="", help="COM2 active")
    radio_parser.add_argument("--com2s", default="", help="COM2 standby")

    # Multi command
    multi_parser = subparsers.add_parser("multi", help="Set Multi panel rows and LEDs")
    multi_parser.add_argument("--top", default="", help="Top row (e.g. 2500)")
    multi_parser.add_argument("--bottom", default="", help="Bottom row (e.g. -500)")
    multi_parser.add_argument("--leds", type=_int_auto, default=0,
                              help="LED bitmap, bit 0=AP ... bit 7=REV (e.g. 0x01)")

    # Switch command
    switch_parser = subparsers.add_parser("switch", help="Set Switch panel gear lights")
    switch_parser.add_argument("--gear", choices=GEAR_CHOICES,
                               help="Preset: down=green, up=red, transition=yellow")
    for light in ("green-n", "green-l", "green-r", "red-n", "red-l", "red-r"):
        switch_parser.add_argument(f"--{light}", action="store_true",
                                   help=f"Light {light.replace('-', ' ').upper()}")

    # FIP command
    fip_parser = subparsers.add_parser("fip", help="Show an image on the FIP")
    source = fip_parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--image", help="Image file (.png, .jpg, .jpeg, .gif)")
    source.add_argument("--pattern", choices=("test", "bars", "gradient"),
                        help="Built-in test image")
    source.add_argument("--color", help="Solid colour, hex (e.g. ff0000)")
    fip_parser.add_argument("--resize", choices=("stretch", "fit", "crop", "center"),
                            help="Resize policy (default from config: fit)")

    # Watch command
    watch_parser = subparsers.add_parser("watch", help="Print input events from a panel")
    watch_parser.add_argument("kind", choices=("radio", "multi", "switch", "fip"))
    watch_parser.add_argument("--count", "-n", type=int, default=0,
                              help="Stop after N events (default: run until Ctrl-C)")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", help="Bind address (default 127.0.0.1)")
    serve_parser.add_argument("--port", type=int, help="Port (default 8080)")
    serve_parser.add_argument("--token", help="Require this X-API-Token header")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    _setup_logging(args.verbose)

    if args.command == "detect":
        return detect(mock=args.mock)
    elif args.command == "radio":
        return set_radio(args.com1a, args.com1s, args.com2a, args.com2s, mock=args.mock)
    elif args.command == "multi":
        return set_multi(args.top, args.bottom, args.leds, mock=args.mock)
    elif args.command == "switch":
        return set_switch(
            gear=args.gear,
            lights=(args.green_n, args.green_l, args.green_r,
                    args.red_n, args.red_l, args.red_r),
            mock=args.mock,
        )
    elif args.command == "fip":
        return send_fip(image=args.image, pattern=args.pattern, color=args.color,
                        resize=args.resize, mock=args.mock)
    elif args.command == "watch":
        return watch(args.kind, count=args.count, mock=args.mock)
    elif args.command == "serve":
        return serve(host=args.host, port=args.port, token=args.token, mock=args.mock)

    return 0


# ── Helpers ───────────────────────────────────────────────────────────

def _backend(mock=False):
    from saitek_panels.conf import settings
    return "mock" if mock else settings.backend


def _open_panel(kind, mock=False, poll=False):
    """Create and connect one panel; caller closes it."""
    from saitek_panels.conf import settings
    from saitek_panels.device_factory import PanelFactory
    from saitek_panels.usb_transport import PanelKind

    kind = PanelKind.from_key(kind)
    kwargs = {'poll': poll, 'timeout_is_idle': settings.timeout_is_idle}
    if kind is PanelKind.FIP:
        from saitek_panels.services.image import FramebufferPipeline
        kwargs['pipeline'] = FramebufferPipeline(settings.fip_options())
    panel = PanelFactory.create_panel(kind, backend=_backend(mock), **kwargs)
    panel.connect()
    return panel


# ── Commands ──────────────────────────────────────────────────────────

def detect(mock=False):
    """List attached panels."""
    try:
        from saitek_panels.device_factory import get_backend_info
        from saitek_panels.usb_transport import find_panels

        info = get_backend_info(_backend(mock))
        print(f"Backend: {info.display}")
        if info.active_backend == "mock":
            print("Mock mode: no hardware is scanned.")
            return 0
        if not info.has_backend:
            print("No USB backend installed. Install pyusb or hidapi.")
            return 1

        panels = find_panels()
        if not panels:
            print("No Saitek panels detected.")
            return 1
        for i, p in enumerate(panels, 1):
            serial = f" serial={p['serial']}" if p['serial'] else ""
            print(f"[{i}] {p['kind'].display_name} "
                  f"[{p['vid']:04x}:{p['pid']:04x}] via {p['backend']}{serial}")
        return 0
    except Exception as e:
        print(f"Error: {e}")
        return 1


def set_radio(com1a="", com1s="", com2a="", com2s="", mock=False):
    """Write the four Radio panel fields."""
    try:
        panel = _open_panel("radio", mock)
        try:
            panel.set_frequencies(com1a, com1s, com2a, com2s)
        finally:
            panel.close()
        print(f"Radio: COM1 {com1a or '-'} / {com1s or '-'}  "
              f"COM2 {com2a or '-'} / {com2s or '-'}")
        return 0
    except Exception as e:
        print(f"Error: {e}")
        return 1


def set_multi(top="", bottom="", leds=0, mock=False):
    """Write the Multi panel rows and LEDs."""
    try:
        panel = _open_panel("multi", mock)
        try:
            panel.set_rows(top, bottom, leds)
        finally:
            panel.close()
        print(f"Multi: top={top or '-'} bottom={bottom or '-'} leds=0x{leds:02x}")
        return 0
    except Exception as e:
        print(f"Error: {e}")
        return 1


def set_switch(gear=None, lights=(False,) * 6, mock=False):
    """Set the Switch panel gear lights from a preset or per-light flags."""
    try:
        from saitek_panels.reports import GearLights

        presets = {
            "down": GearLights.all_green,
            "up": GearLights.all_red,
            "transition": GearLights.all_yellow,
            "off": GearLights.all_off,
        }
        value = presets[gear]() if gear else GearLights(*lights)

        panel = _open_panel("switch", mock)
        try:
            panel.set_leds(value)
        finally:
            panel.close()
        print(f"Switch: gear lights 0x{value.to_byte():02x}")
        return 0
    except Exception as e:
        print(f"Error: {e}")
        return 1


def send_fip(image=None, pattern=None, color=None, resize=None, mock=False):
    """Send an image file, a test pattern or a solid colour to the FIP."""
    try:
        from saitek_panels.services.image import parse_color

        rgb = parse_color(color) if color else None
        panel = _open_panel("fip", mock)
        try:
            if resize:
                panel.pipeline.options = dataclasses.replace(
                    panel.pipeline.options, resize_policy=resize)
            if image:
                panel.send_image(image)
                what = image
            elif pattern:
                panel.show_pattern(pattern)
                what = f"pattern '{pattern}'"
            else:
                panel.clear(rgb)
                what = "#{:02x}{:02x}{:02x}".format(*rgb)
        finally:
            panel.close()
        print(f"FIP: sent {what}")
        return 0
    except Exception as e:
        print(f"Error: {e}")
        return 1


def watch(kind, count=0, mock=False):
    """Print input events until Ctrl-C (or *count* events)."""
    from saitek_panels.device_panel import PanelState

    try:
        panel = _open_panel(kind, mock, poll=True)
    except Exception as e:
        print(f"Error: {e}")
        return 1

    print(f"Watching {panel.name} (Ctrl-C to stop)")
    seen = 0
    try:
        for event in panel.input_events():
            state = "on" if event.state else "off"
            print(f"{event.timestamp:12.3f}  {event.signal:<16} {state}")
            seen += 1
            if count and seen >= count:
                break
        else:
            if panel.state is PanelState.DISCONNECTED:
                print("Panel disconnected.")
                return 1
    except KeyboardInterrupt:
        pass
    finally:
        panel.close()
    return 0


def serve(host=None, port=None, token=None, mock=False):
    """Run the FastAPI app under uvicorn."""
    try:
        import uvicorn
    except ImportError:
        print("Error: uvicorn not installed. Install with: pip install uvicorn")
        return 1

    from saitek_panels.api import app, configure_auth, configure_manager
    from saitek_panels.conf import settings
    from saitek_panels.services import PanelManager

    manager = PanelManager(
        backend=_backend(mock),
        fip_options=settings.fip_options(),
        timeout_is_idle=settings.timeout_is_idle,
    )
    configure_manager(manager)
    configure_auth(token)
    manager.connect_all()

    try:
        uvicorn.run(app, host=host or settings.api_host, port=port or settings.api_port)
    finally:
        manager.close_all()
    return 0


if __name__ == "__main__":
    sys.exit(main())
