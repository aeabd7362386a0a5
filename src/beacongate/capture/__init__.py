"""Landing-page evidence capture: URL guard, hashing, artifact storage and the browser capturer."""
