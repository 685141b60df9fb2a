"""Contract ABIs shipped with the relayer."""
