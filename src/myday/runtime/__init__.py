"""Runtime domain logic for My Day: time ranges, day keys, roster state, lanes, and the service layer."""
