"""Cross-cutting helpers: data export and analytics."""
