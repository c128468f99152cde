"""Message routers."""