"""Machine catalog: rentable machines and their equipment add-ons."""
