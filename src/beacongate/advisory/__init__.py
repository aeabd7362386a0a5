"""Non-binding advisory generation."""
