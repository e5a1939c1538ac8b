"""
Hands-free voice conversation loop for the page editor.

Sequences speech capture, silence segmentation, the remote agent round trip,
reply parsing/dispatch and speech playback without manual turn-taking.
"""
