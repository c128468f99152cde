"""Connection policies, the peer table and mDNS discovery helpers."""