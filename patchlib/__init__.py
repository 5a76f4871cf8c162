"""
patchlib: Sample processing and preset packaging for the OP-XY.

Modules:
  - wav_parser: RIFF/WAVE header, smpl chunk and metadata reading
  - pcm: In-memory PCM buffers and the soundfile decoder
  - edit_points: Zero-crossing search and trim point snapping
  - converter: Channel routing, resampling, export format policies
  - size_estimator: Patch size estimates and the 8 MiB budget
  - notes: Note names, MIDI numbers, root notes from filenames
  - regions: Drum and multisample key regions
  - wav_encoder: 16/24-bit WAV serialization
  - presets: preset.json templates, scaling and import
  - packager: Deterministic preset archives
  - export: End-to-end drum and multisample export
  - config: YAML configuration
"""

__version__ = "0.1.0"
__author__ = "Audio DSP Tool"
