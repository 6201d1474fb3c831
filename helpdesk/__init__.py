"""Help-desk ticketing back end: ticket lifecycle, SLA tracking and access control."""
