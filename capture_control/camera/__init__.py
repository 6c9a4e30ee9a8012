"""Camera-side building blocks: capabilities, selection, controls and the device session."""
