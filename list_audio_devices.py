#!/usr/bin/env python3
"""List audio output devices usable for the meter (index goes in audio.device_index)"""


def output_devices() -> list[dict]:
    """Devices with at least one output channel, with their sounddevice index."""
    import sounddevice as sd

    found = []
    for i, d in enumerate(sd.query_devices()):
        if d['max_output_channels'] <= 0:
            continue
        found.append({
            'index': i,
            'name': d['name'],
            'channels': d['max_output_channels'],
            'sample_rate': d['default_samplerate'],
        })
    return found


def main() -> int:
    try:
        devices = output_devices()
    except OSError as e:
        print(f"Audio output unavailable: {e}")
        return 1

    print("Available Output Devices:\n")
    for d in devices:
        print(f"[{d['index']}] {d['name']}")
        print(f"    Output: {d['channels']} channels, Default SR: {d['sample_rate']} Hz")
        print()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
